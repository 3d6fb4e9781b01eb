from __future__ import annotations

from ..extensions import db
from rentdesk.time_utils import to_utc_z

class Category(db.Model):
    """
    Optional grouping of rentable products (e.g. "Lenses", "Lighting").

    Soft-deleted by clearing is_active; products and bookings keep pointing
    at a deactivated category, but it cannot be assigned again until restored.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
        db.Index("ix_categories_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("categories", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Product(db.Model):
    """
    Rentable item.

    MULTI-TENANT: Products are scoped directly to organizations via org_id.
    Codes are unique within an organization, not globally.

    LIFECYCLE: created/edited by staff, soft-deleted by clearing is_active.
    Bookings reference products but never own them; a deactivated product
    keeps its existing bookings and simply cannot be booked again.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_products_org_code"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    default_rent_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} title={self.title!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "category_id": self.category_id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "default_rent_cents": self.default_rent_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
