"""
SQLAlchemy Database Models

One table per entity store:
- users
- restaurants
- menu_items
- orders (+ order_items, one row per line of the order)
- notifications
"""

from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Text,
    Enum,
    Boolean,
    JSON,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from app.database import Base


class UserRole(str, enum.Enum):
    """Account roles."""
    CUSTOMER = "customer"
    RESTAURANT = "restaurant"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PLACED = "Placed"
    CONFIRMED = "Confirmed"
    PREPARING = "Preparing"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class User(Base):
    """Customer or restaurant-owner account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)  # werkzeug hash, never raw
    role = Column(
        Enum(UserRole, name="user_role"),
        default=UserRole.CUSTOMER,
        nullable=False,
    )

    contact_number = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    profile_picture = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.now, nullable=True)

    restaurants = relationship("Restaurant", back_populates="owner")

    def __repr__(self):
        return f"<User #{self.id} - {self.username} - {self.role.value}>"


class Restaurant(Base):
    """A restaurant owned by a `restaurant` user."""
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # =========================================================================
    # PROFILE
    # =========================================================================
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    cuisine = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    contact_number = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    operating_hours = Column(JSON, nullable=True)  # e.g. {"monday": "09:00-22:00"}
    profile_picture = Column(String(500), nullable=True)
    cover_image = Column(String(500), nullable=True)

    # =========================================================================
    # STATE
    # =========================================================================
    is_active = Column(Boolean, default=True, nullable=False)
    rating = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.now, nullable=True)

    owner = relationship("User", back_populates="restaurants")

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.name}>"


class MenuItem(Base):
    """A dish offered by a restaurant."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    category = Column(String(100), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    image_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, onupdate=datetime.now, nullable=True)

    restaurant = relationship("Restaurant")

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price:.2f}>"


class Order(Base):
    """
    Main Order table.

    Totals are stored as submitted unless server-side recomputation is
    enabled in settings.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # =========================================================================
    # PRICING
    # =========================================================================
    total_amount = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    final_total = Column(Float, nullable=False, default=0.0)

    # =========================================================================
    # DELIVERY / PAYMENT
    # =========================================================================
    delivery_address = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=True)
    special_instructions = Column(Text, nullable=True)
    estimated_delivery_time = Column(DateTime, nullable=True, index=True)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    order_status = Column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.PLACED,
        nullable=False,
        index=True,
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = Column(DateTime, onupdate=datetime.now, nullable=True)

    user = relationship("User")
    restaurant = relationship("Restaurant")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    def __repr__(self):
        return f"<Order #{self.id} - restaurant {self.restaurant_id} - {self.order_status.value}>"


class OrderItem(Base):
    """One line of an order; `position` keeps the submitted sequence."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    menu_item_id = Column(
        Integer,
        ForeignKey("menu_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=True)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")

    def __repr__(self):
        return f"<OrderItem order={self.order_id} menu_item={self.menu_item_id} x{self.quantity}>"


class Notification(Base):
    """
    Append-only event record addressed to a user.

    `related_entity_type`/`related_entity_id` point at any entity,
    currently always the order whose status changed.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    recipient_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Integer, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    recipient = relationship("User")

    def __repr__(self):
        return f"<Notification #{self.id} -> user {self.recipient_id}: {self.title}>"
