from __future__ import annotations

from ..extensions import db
from ..time_utils import age_in_hours, to_utc_z


class Notification(db.Model):
    """
    Stock alert for a product.

    low_stock / out_of_stock rows are created by the stock check and are
    deduplicated: a product has at most one unread alert of those types.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_product_read", "product_id", "is_read"),
        db.Index("ix_notifications_type_read", "type", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    message = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(32), nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", back_populates="notifications")

    def __repr__(self) -> str:
        return f"<Notification id={self.id} product_id={self.product_id} type={self.type} read={self.is_read}>"

    @property
    def is_critical(self) -> bool:
        return self.type == "out_of_stock"

    @property
    def urgency(self) -> str:
        return "critical" if self.is_critical else "warning"

    @property
    def formatted_message(self) -> str:
        if self.product is None:
            return self.message
        return f"[{self.product.sku}] {self.product.name}: {self.message}"

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
            "product": (
                {"id": product.id, "sku": product.sku, "name": product.name, "category": product.category}
                if product else None
            ),
            "formatted_message": self.formatted_message,
            "urgency": self.urgency,
            "age_hours": age_in_hours(self.created_at),
        }
