from .tenancy import Organization, ApiToken
from .catalog import Category, Product
from .rentals import Order, Booking, BookingPayment

__all__ = [
    'Organization', 'ApiToken',
    'Category', 'Product',
    'Order', 'Booking', 'BookingPayment',
]
