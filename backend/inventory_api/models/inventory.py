from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    quantity is the authoritative on-hand count. It is only changed through
    stock_service so that every change gets an InventoryAudit row written in
    the same transaction.

    LOW STOCK: quantity <= reorder_level. OUT OF STOCK: quantity == 0.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_quantity_reorder", "quantity", "reorder_level"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonneg"),
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Canonical identifier, stored uppercase
    sku = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    location = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    audits = db.relationship(
        "InventoryAudit",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    notifications = db.relationship(
        "Notification",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.reorder_level or 0)

    @property
    def is_out_of_stock(self) -> bool:
        return (self.quantity or 0) == 0

    @property
    def total_value(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.price or 0)

    @property
    def urgency(self) -> str:
        if self.is_out_of_stock:
            return "critical"
        if self.is_low_stock:
            return "warning"
        return "normal"

    def status_dict(self) -> dict:
        return {
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "stock_level": "low" if self.is_low_stock else "normal",
            "total_value": float(self.total_value),
            "urgency": self.urgency,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "price": float(self.price) if self.price is not None else None,
            "location": self.location,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "total_value": float(self.total_value),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryAudit(db.Model):
    """
    Append-only record of one stock quantity change.

    Rows are written in the same DB transaction as the Product.quantity update
    and are never edited. The only delete paths are the Product cascade and the
    age-based purge in audit_service.
    """
    __tablename__ = "inventory_audit"
    __table_args__ = (
        db.Index("ix_inventory_audit_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_audit_user_created", "user_id", "created_at"),
        db.Index("ix_inventory_audit_operation", "operation_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    old_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    operation_type = db.Column(db.String(32), nullable=False, default="manual_adjustment")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", back_populates="audits")
    user = db.relationship("User", back_populates="audits")

    def __repr__(self) -> str:
        return (
            f"<InventoryAudit id={self.id} product_id={self.product_id} "
            f"{self.old_quantity}->{self.new_quantity} op={self.operation_type}>"
        )

    @property
    def quantity_change(self) -> int:
        return self.new_quantity - self.old_quantity

    @property
    def is_increase(self) -> bool:
        return self.quantity_change > 0

    @property
    def is_decrease(self) -> bool:
        return self.quantity_change < 0

    @property
    def change_type(self) -> str:
        if self.is_increase:
            return "increase"
        if self.is_decrease:
            return "decrease"
        return "no_change"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            "operation_type": self.operation_type,
            "created_at": to_utc_z(self.created_at),
        }

    def to_display(self) -> dict:
        product = self.product
        user = self.user
        return {
            "id": self.id,
            "product": f"{product.sku} - {product.name}" if product else "Unknown Product",
            "product_id": self.product_id,
            "user": f"{user.username} ({user.role})" if user else "Unknown User",
            "user_id": self.user_id,
            "change": {
                "from": self.old_quantity,
                "to": self.new_quantity,
                "difference": self.quantity_change,
                "type": self.change_type,
            },
            "reason": self.reason,
            "operation_type": self.operation_type,
            "timestamp": to_utc_z(self.created_at),
        }
