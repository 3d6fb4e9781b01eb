# backend/rentdesk/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product and category operations take org_id explicitly.
- get_product / get_bookable_product never return another tenant's row
- delete_product / delete_category are soft deletes (is_active = False);
  bookings keep referencing the row, restore_* reactivates it
- Only active categories can be newly assigned to products or bookings
"""
from __future__ import annotations
from sqlalchemy import or_
from ..extensions import db
from ..errors import NotFoundError, InvalidStateTransitionError
from ..models import Product, Category
from ..validation import ValidationError
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {"code", "title", "description", "category_id", "default_rent_cents", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int, org_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def get_bookable_product(product_id: int, org_id: int) -> Product:
    """Product lookup used by the booking core: must exist in the org and be active."""
    product = get_product(product_id, org_id)
    if not product.is_active:
        raise InvalidStateTransitionError(
            "Product is inactive and cannot be booked",
            details={"product_id": product_id},
        )
    return product


def get_category(category_id: int, org_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id, org_id=org_id).first()
    if not category:
        raise NotFoundError("Category not found", details={"category_id": category_id})
    return category


def get_assignable_category(category_id: int, org_id: int) -> Category:
    """Category lookup for new assignments: deactivated ones are refused."""
    category = get_category(category_id, org_id)
    if not category.is_active:
        raise InvalidStateTransitionError(
            "Category is inactive and cannot be assigned",
            details={"category_id": category_id},
        )
    return category


def list_categories(org_id: int, search: str | None = None, include_inactive: bool = False) -> dict:
    query = db.session.query(Category).filter(Category.org_id == org_id)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(Category.name.ilike(term), Category.description.ilike(term)))

    query = query.order_by(Category.name.asc(), Category.id.asc())
    return paginate(query)


def _clean_category_name(name) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    return name


def _check_category_name_unique(org_id: int, name: str, exclude_id: int | None = None) -> None:
    # Deactivated categories still hold their name (uq_categories_org_name)
    query = db.session.query(Category).filter_by(org_id=org_id, name=name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    existing = query.first()
    if existing and existing.is_active:
        raise ValidationError(f"Category '{name}' already exists")
    if existing:
        raise ValidationError(f"Category '{name}' exists but is inactive; restore it instead")


def add_category(org_id: int, name: str, description: str | None = None) -> Category:
    """Validate and stage a new category; the caller commits."""
    name = _clean_category_name(name)
    _check_category_name_unique(org_id, name)

    category = Category(org_id=org_id, name=name, description=description or None, is_active=True)
    db.session.add(category)
    db.session.flush()
    return category


def create_category(org_id: int, name: str, description: str | None = None) -> Category:
    category = add_category(org_id, name, description)
    db.session.commit()
    return category


def update_category(category_id: int, *, patch: dict, org_id: int) -> Category:
    category = get_category(category_id, org_id)

    if "name" in patch:
        name = _clean_category_name(patch["name"])
        if name != category.name:
            _check_category_name_unique(org_id, name, exclude_id=category.id)
        category.name = name
    if "description" in patch:
        category.description = patch["description"] or None
    if "is_active" in patch and patch["is_active"] is not None:
        category.is_active = patch["is_active"]

    db.session.commit()
    return category


def delete_category(category_id: int, org_id: int) -> Category:
    """Soft delete: products and bookings keep their category_id."""
    category = get_category(category_id, org_id)
    category.is_active = False
    db.session.commit()
    return category


def restore_category(category_id: int, org_id: int) -> Category:
    category = get_category(category_id, org_id)
    category.is_active = True
    db.session.commit()
    return category


def list_products(
    org_id: int,
    include_inactive: bool = False,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = db.session.query(Product).filter(Product.org_id == org_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    query = query.order_by(Product.title.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page)


def _check_code_unique(org_id: int, code: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter_by(org_id=org_id, code=code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ValidationError(f"Product code '{code}' already exists")


def create_product(*, patch: dict, org_id: int) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ValidationError: If code already exists in the organization
        NotFoundError: If category_id belongs to another organization
    """
    _check_code_unique(org_id, patch["code"])
    if patch.get("category_id") is not None:
        get_assignable_category(patch["category_id"], org_id)

    product = Product(org_id=org_id)
    product.is_active = True
    apply_product_patch(product, patch)

    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, patch: dict, org_id: int) -> Product:
    product = get_product(product_id, org_id)

    if "code" in patch and patch["code"] != product.code:
        _check_code_unique(org_id, patch["code"], exclude_id=product.id)
    if patch.get("category_id") not in (None, product.category_id):
        get_assignable_category(patch["category_id"], org_id)

    apply_product_patch(product, patch)
    db.session.commit()
    return product


def delete_product(product_id: int, org_id: int) -> Product:
    """Soft delete: deactivate, keep the row for existing bookings."""
    product = get_product(product_id, org_id)
    product.is_active = False
    db.session.commit()
    return product


def restore_product(product_id: int, org_id: int) -> Product:
    """Undo a soft delete; the product can be booked again."""
    product = get_product(product_id, org_id)
    product.is_active = True
    db.session.commit()
    return product
