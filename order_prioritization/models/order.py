"""
SQLAlchemy Order models
"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from order_prioritization.database import Base


class Order(Base):
    """Order database model"""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    customer_id = Column(String(64), nullable=True, index=True)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)

    status = Column(String(50), nullable=False, default='pending', index=True)
    subtotal = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False, default=0.0)
    shipping_amount = Column(Float, nullable=False, default=0.0)
    discount_amount = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, index=True)
    currency = Column(String(3), nullable=False, default='USD')
    shipping_method = Column(String(50), nullable=False, default='standard', index=True)

    # Priority
    priority_score = Column(Float, nullable=False, default=0.0)
    priority_level = Column(Integer, nullable=False, default=3, index=True)
    priority_tags = Column(JSON, nullable=False, default=list)
    fulfillment_priority = Column(Float, nullable=False, index=True)
    manual_override = Column(Boolean, nullable=False, default=False)

    # Classification
    is_high_value = Column(Boolean, nullable=False, default=False, index=True)
    is_vip_customer = Column(Boolean, nullable=False, default=False, index=True)
    is_repeat_customer = Column(Boolean, nullable=False, default=False)

    billing_address = Column(JSON, nullable=True)
    shipping_address = Column(JSON, nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    # Constraints
    __table_args__ = (
        CheckConstraint('priority_level BETWEEN 1 AND 5', name='check_priority_level_range'),
        CheckConstraint('priority_score >= 0', name='check_priority_score_non_negative'),
        CheckConstraint('total_amount > 0', name='check_total_positive'),
        CheckConstraint(
            "status IN ('pending', 'processing', 'shipped', 'delivered', 'cancelled')",
            name='check_status_valid'
        ),
        Index('ix_orders_level_score', 'priority_level', 'priority_score'),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status}', priority_level={self.priority_level}, version={self.version})>"


class OrderItem(Base):
    """Order line item"""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=True, index=True)
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(100), nullable=True)
    product_category = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    is_digital = Column(Boolean, nullable=False, default=False)
    requires_special_handling = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
        CheckConstraint('unit_price >= 0', name='check_unit_price_non_negative'),
    )

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, quantity={self.quantity})>"


class OrderStatusHistory(Base):
    """Append-only status change log"""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=False)
    changed_by = Column(String(100), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, {self.previous_status} -> {self.new_status})>"


class OrderPriorityHistory(Base):
    """Append-only priority change log"""

    __tablename__ = "order_priority_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_level = Column(Integer, nullable=True)
    new_level = Column(Integer, nullable=False)
    previous_score = Column(Float, nullable=True)
    new_score = Column(Float, nullable=False)
    changed_by = Column(String(100), nullable=False)
    is_manual = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<OrderPriorityHistory(order_id={self.order_id}, {self.previous_level} -> {self.new_level}, manual={self.is_manual})>"
