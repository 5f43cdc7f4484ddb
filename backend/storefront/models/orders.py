from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed")


class Order(db.Model):
    """
    Customer order created at the end of a successful checkout attempt.

    total_amount is fixed at creation (minor units) and is never recomputed
    from the item rows.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_email_created", "customer_email", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)

    # Customer contact
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    shipping_address = db.Column(db.Text, nullable=False)

    # Amounts (minor units, e.g. paise)
    total_amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    # Lifecycle
    status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(64), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    # Gateway references kept for reconciliation
    gateway = db.Column(db.String(32), nullable=True)
    gateway_order_id = db.Column(db.String(128), nullable=True, index=True)
    gateway_payment_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        backref="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "shippingAddress": self.shipping_address,
            "items": [item.to_dict() for item in self.items],
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "status": self.status,
            "paymentMethod": self.payment_method,
            "paymentStatus": self.payment_status,
            "gateway": self.gateway,
            "gatewayOrderId": self.gateway_order_id,
            "gatewayPaymentId": self.gateway_payment_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """Snapshot of a cart line at order time (name, image and prices copied)."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False, default="")
    image = db.Column(db.String(1024), nullable=True)
    variant_id = db.Column(db.String(64), nullable=True)
    variant_label = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_base_price = db.Column(db.Integer, nullable=False)
    variant_price_adjustment = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "image": self.image,
            "variantId": self.variant_id,
            "variantLabel": self.variant_label,
            "quantity": self.quantity,
            "unitBasePrice": self.unit_base_price,
            "variantPriceAdjustment": self.variant_price_adjustment,
            "price": self.unit_price,
            "lineTotal": self.line_total,
        }
