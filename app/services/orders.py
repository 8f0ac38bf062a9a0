"""
Order Lifecycle Service

Creates orders, lists them for restaurant owners and applies status
transitions. A status change and the notification it produces are written
in the same transaction; outbound delivery is queued only after commit.

Status workflow:
    Placed -> Confirmed -> Preparing -> Out for Delivery -> Delivered
    Cancelled is reachable from any non-terminal status.

The table below is only enforced when ``ENFORCE_STATUS_TRANSITIONS`` is on;
otherwise any status may follow any other (manual corrections).
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import get_settings
from app.core.exceptions import (
    Forbidden,
    InvalidInput,
    InvalidStatus,
    InvalidTransition,
    NotFound,
    PersistenceError,
)
from app.models import MenuItem, Notification, Order, OrderItem, OrderStatus, Restaurant, User, UserRole
from app.schemas import OrderCreate
from app.services.identity import list_owned_restaurants
from app.services.notifications import dispatch_notification, record_notification

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

VALID_STATUSES = [s.value for s in OrderStatus]


def parse_status(token: Any) -> OrderStatus:
    """Map a wire token ("Out for Delivery") to OrderStatus or raise InvalidStatus."""
    try:
        return OrderStatus(token)
    except ValueError:
        raise InvalidStatus(f"Invalid order status. Options: {VALID_STATUSES}")


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Re-applying the current status is always allowed."""
    return new == current or new in ALLOWED_TRANSITIONS[current]


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialize_menu_item(menu_item: Optional[MenuItem]) -> Optional[dict[str, Any]]:
    if menu_item is None:
        return None
    return {
        "id": menu_item.id,
        "restaurantId": menu_item.restaurant_id,
        "name": menu_item.name,
        "description": menu_item.description,
        "price": menu_item.price,
        "category": menu_item.category,
        "isAvailable": menu_item.is_available,
        "imageUrl": menu_item.image_url,
    }


def serialize_order(
    order: Order,
    include_parties: bool = False,
    resolve_menu_items: bool = False,
) -> dict[str, Any]:
    """
    Convert an order to its wire representation.

    Args:
        order: Order with ``items`` loaded
        include_parties: Embed ``user {id, username, email}`` and
            ``restaurant {id, name, address}`` (both relationships must be loaded)
        resolve_menu_items: Replace each item's menu item id with the menu
            item record (``items.menu_item`` must be loaded)
    """
    items = []
    for item in order.items:
        items.append({
            "menuItem": (
                serialize_menu_item(item.menu_item) if resolve_menu_items else item.menu_item_id
            ),
            "quantity": item.quantity,
            "price": item.price,
        })

    data = {
        "id": order.id,
        "user": order.user_id,
        "restaurant": order.restaurant_id,
        "items": items,
        "totalAmount": order.total_amount,
        "discount": order.discount,
        "finalTotal": order.final_total,
        "orderStatus": order.order_status.value,
        "deliveryAddress": order.delivery_address,
        "paymentMethod": order.payment_method,
        "specialInstructions": order.special_instructions,
        "estimatedDeliveryTime": order.estimated_delivery_time,
        "createdAt": order.created_at,
        "updatedAt": order.updated_at,
    }

    if include_parties:
        data["user"] = (
            {"id": order.user.id, "username": order.user.username, "email": order.user.email}
            if order.user is not None else None
        )
        data["restaurant"] = (
            {"id": order.restaurant.id, "name": order.restaurant.name, "address": order.restaurant.address}
            if order.restaurant is not None else None
        )

    return data


# =============================================================================
# CREATE
# =============================================================================

async def _apply_menu_prices(db: AsyncSession, order: Order, restaurant: Restaurant) -> None:
    """Price every line from the restaurant's menu and recompute totals."""
    menu_ids = {item.menu_item_id for item in order.items}
    result = await db.execute(
        select(MenuItem).where(
            MenuItem.id.in_(menu_ids),
            MenuItem.restaurant_id == restaurant.id,
        )
    )
    menu = {m.id: m for m in result.scalars().all()}

    unknown = sorted(menu_ids - set(menu))
    if unknown:
        raise InvalidInput(f"Menu items {unknown} do not belong to restaurant #{restaurant.id}")

    for item in order.items:
        item.price = menu[item.menu_item_id].price

    subtotal = round(sum(item.price * item.quantity for item in order.items), 2)
    order.total_amount = subtotal
    order.final_total = round(max(subtotal - order.discount, 0.0), 2)


async def get_order(db: AsyncSession, order_id: int, include_parties: bool = False) -> Order:
    """Load an order with its items, or raise NotFound."""
    options = [selectinload(Order.items)]
    if include_parties:
        options += [selectinload(Order.user), selectinload(Order.restaurant)]

    result = await db.execute(select(Order).where(Order.id == order_id).options(*options))
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order #{order_id} not found")
    return order


async def create_order(db: AsyncSession, payload: OrderCreate, caller: User) -> Order:
    """
    Persist a new order for the caller.

    Totals are taken from the payload unless ``RECOMPUTE_ORDER_TOTALS``
    is enabled.

    Raises:
        Forbidden: payload names a different user
        NotFound: restaurant does not exist
        InvalidInput: unknown menu items (recompute mode only)
        PersistenceError: store failure
    """
    settings = get_settings()

    if payload.user is not None and payload.user != caller.id:
        raise Forbidden("Orders can only be placed for the authenticated user.")

    restaurant = await db.get(Restaurant, payload.restaurant)
    if restaurant is None:
        raise NotFound(f"Restaurant #{payload.restaurant} not found")

    order = Order(
        user_id=caller.id,
        restaurant_id=restaurant.id,
        total_amount=payload.total_amount,
        discount=payload.discount,
        final_total=payload.final_total,
        delivery_address=payload.delivery_address,
        payment_method=payload.payment_method,
        special_instructions=payload.special_instructions,
        estimated_delivery_time=payload.estimated_delivery_time,
        order_status=OrderStatus.PLACED,
    )
    order.items = [
        OrderItem(
            position=position,
            menu_item_id=item.menu_item,
            quantity=item.quantity,
            price=item.price,
        )
        for position, item in enumerate(payload.items)
    ]

    if settings.recompute_order_totals:
        await _apply_menu_prices(db, order, restaurant)

    db.add(order)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Error creating order for user #{caller.id}")
        raise PersistenceError(f"Failed to create order: {e}")

    logger.info(
        f"Order #{order.id} created by user #{caller.id} "
        f"for restaurant #{restaurant.id} (final total {order.final_total:.2f})"
    )
    return await get_order(db, order.id)


# =============================================================================
# LIST FOR OWNER
# =============================================================================

async def list_orders_for_owner(db: AsyncSession, owner: User) -> list[Order]:
    """
    All orders of the restaurants owned by ``owner``, most recent first,
    with user and restaurant loaded.

    Raises:
        Forbidden: caller is not a restaurant owner
        NotFound: caller owns no restaurants
    """
    if owner.role != UserRole.RESTAURANT:
        raise Forbidden()

    restaurants = await list_owned_restaurants(db, owner)
    if not restaurants:
        raise NotFound("No restaurants found for this owner.")

    restaurant_ids = [r.id for r in restaurants]
    result = await db.execute(
        select(Order)
        .where(Order.restaurant_id.in_(restaurant_ids))
        .options(
            selectinload(Order.items),
            selectinload(Order.user),
            selectinload(Order.restaurant),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(result.scalars().all())


# =============================================================================
# UPDATE STATUS
# =============================================================================

async def update_order_status(
    db: AsyncSession,
    order_id: int,
    new_status: Any,
    actor: User,
) -> tuple[Order, Optional[Notification]]:
    """
    Set an order's status and notify its customer.

    Returns:
        (order, notification): notification is None when the order has no user

    Raises:
        InvalidStatus: unknown status token (nothing is loaded or written)
        NotFound: order does not exist
        Forbidden: actor does not own the order's restaurant
        InvalidTransition: disallowed transition while enforcement is on
        PersistenceError: store failure; neither write is kept
    """
    status = parse_status(new_status)
    settings = get_settings()

    order = await get_order(db, order_id)

    restaurant = await db.get(Restaurant, order.restaurant_id) if order.restaurant_id else None
    if actor.role != UserRole.RESTAURANT or restaurant is None or restaurant.owner_id != actor.id:
        raise Forbidden("You do not own the restaurant of this order.")

    previous = order.order_status
    if settings.enforce_status_transitions and not can_transition(previous, status):
        raise InvalidTransition(
            f"Cannot change order #{order.id} from {previous.value} to {status.value}"
        )

    order.order_status = status

    notification = None
    recipient = None
    if order.user_id is not None:
        recipient = await db.get(User, order.user_id)
        notification = record_notification(
            db,
            recipient_id=order.user_id,
            type=status.value,
            title=f"Your order is now {status.value}",
            message=f'Order #{order.id} status has been updated to "{status.value}".',
            entity_type="Order",
            entity_id=order.id,
        )
    else:
        logger.warning(f"No user associated with order #{order.id}; no notification recorded")

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Error updating status of order #{order_id}")
        raise PersistenceError(f"Failed to update order status: {e}")

    logger.info(f"Order #{order.id} status: {previous.value} -> {status.value}")

    if notification is not None and recipient is not None:
        dispatch_notification(notification, recipient)

    return order, notification
