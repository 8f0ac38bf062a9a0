"""
Analytics Aggregation Service

Sales reports over day/week/month windows, popular-item rankings and
order exports for a restaurant owned by the caller.

Windows are computed in local server time:
    day   - today 00:00:00 to today 23:59:59.999999
    week  - most recent Monday 00:00:00 to end of today
    month - first of the month 00:00:00 to end of today
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import pandas as pd
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import get_settings
from app.core.exceptions import InvalidFormat, InvalidPeriod, NotFound
from app.models import MenuItem, Order, OrderItem, Restaurant, User
from app.services.identity import get_owned_restaurant
from app.services.orders import serialize_order

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")
CSV_COLUMNS = ["orderId", "totalAmount", "items"]
UNKNOWN_ITEM_NAME = "Unknown item"


@dataclass
class DateRange:
    start_date: datetime
    end_date: datetime

    def to_dict(self) -> dict[str, datetime]:
        return {"startDate": self.start_date, "endDate": self.end_date}


@dataclass
class ExportResult:
    """Export payload: CSV text or the list of serialized orders."""
    format: str
    content: Any
    filename: Optional[str] = None

    @property
    def media_type(self) -> str:
        return "text/csv" if self.format == "csv" else "application/json"


def calculate_date_range(period: str, now: Optional[datetime] = None) -> DateRange:
    """
    Resolve a period token to an inclusive window ending today.

    Raises:
        InvalidPeriod: token is not day, week or month
    """
    now = now or datetime.now()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_today = now.replace(hour=23, minute=59, second=59, microsecond=999999)

    if period == "day":
        start = start_of_today
    elif period == "week":
        # weekday(): Monday == 0
        start = start_of_today - timedelta(days=start_of_today.weekday())
    elif period == "month":
        start = start_of_today.replace(day=1)
    else:
        raise InvalidPeriod()

    return DateRange(start_date=start, end_date=end_of_today)


async def _require_owned_restaurant(db: AsyncSession, restaurant_id: int, owner: User) -> Restaurant:
    restaurant = await get_owned_restaurant(db, restaurant_id, owner)
    if restaurant is None:
        raise NotFound("Restaurant not found or unauthorized access")
    return restaurant


def _window_condition(restaurant_id: int, window: DateRange):
    return and_(
        Order.restaurant_id == restaurant_id,
        or_(
            Order.created_at.between(window.start_date, window.end_date),
            Order.estimated_delivery_time.between(window.start_date, window.end_date),
        ),
    )


# =============================================================================
# SALES REPORT
# =============================================================================

async def sales_report(
    db: AsyncSession,
    restaurant_id: int,
    period: str,
    owner: User,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Summarize the restaurant's orders that were created, or are due for
    delivery, inside the period window.

    Raises:
        NotFound: restaurant missing or not owned by ``owner``
        InvalidPeriod: unrecognized period token
    """
    restaurant = await _require_owned_restaurant(db, restaurant_id, owner)
    window = calculate_date_range(period, now=now)
    condition = _window_condition(restaurant.id, window)

    totals = (await db.execute(
        select(
            func.coalesce(func.sum(Order.final_total), 0.0),
            func.count(Order.id),
            func.coalesce(func.sum(Order.discount), 0.0),
        ).where(condition)
    )).one()
    total_sales, total_orders, total_discounts = float(totals[0]), int(totals[1]), float(totals[2])

    total_items = (await db.execute(
        select(func.count(OrderItem.id))
        .join(Order, OrderItem.order_id == Order.id)
        .where(condition)
    )).scalar() or 0

    orders_result = await db.execute(
        select(Order)
        .where(condition)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    orders = orders_result.scalars().all()

    average = round(total_sales / total_orders, 2) if total_orders > 0 else 0.0

    logger.info(
        f"Sales report for restaurant #{restaurant.id} ({period}): "
        f"{total_orders} orders, {total_sales:.2f} total"
    )

    return {
        "totalSales": round(total_sales, 2),
        "totalOrders": total_orders,
        "totalItems": int(total_items),
        "totalDiscounts": round(total_discounts, 2),
        "averageOrderValue": average,
        "periodRange": window.to_dict(),
        "orders": [serialize_order(o) for o in orders],
    }


# =============================================================================
# POPULAR ITEMS
# =============================================================================

async def popular_items(
    db: AsyncSession,
    restaurant_id: int,
    owner: User,
) -> list[dict[str, Any]]:
    """
    Rank the restaurant's menu items by total quantity ordered.

    Lines whose menu item no longer exists are ignored. Ties are broken by
    name, ascending.
    """
    settings = get_settings()
    restaurant = await _require_owned_restaurant(db, restaurant_id, owner)

    total_sold = func.sum(OrderItem.quantity).label("total_sold")
    result = await db.execute(
        select(MenuItem.name, total_sold)
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .join(MenuItem, OrderItem.menu_item_id == MenuItem.id)
        .where(Order.restaurant_id == restaurant.id)
        .group_by(MenuItem.name)
        .order_by(total_sold.desc(), MenuItem.name.asc())
        .limit(settings.popular_items_limit)
    )

    ranking = [{"name": name, "totalSold": int(sold)} for name, sold in result.all()]
    logger.info(f"Popular items for restaurant #{restaurant.id}: {len(ranking)} entries")
    return ranking


# =============================================================================
# EXPORT
# =============================================================================

def summarize_items(order: Order) -> str:
    """Human-readable item list: ``"Pizza (x2), Coke (x1)"``."""
    return ", ".join(
        f"{item.menu_item.name if item.menu_item is not None else UNKNOWN_ITEM_NAME} (x{item.quantity})"
        for item in order.items
    )


def orders_to_csv(orders: list[Order]) -> str:
    rows = [
        {
            "orderId": order.id,
            "totalAmount": order.final_total,
            "items": summarize_items(order),
        }
        for order in orders
    ]
    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    return df.to_csv(index=False)


async def export_orders(
    db: AsyncSession,
    restaurant_id: int,
    format: str,
    owner: User,
) -> ExportResult:
    """
    Export every order of the restaurant.

    Raises:
        InvalidFormat: format is not csv or json
        NotFound: restaurant missing or not owned by ``owner``
    """
    if format not in EXPORT_FORMATS:
        raise InvalidFormat()

    restaurant = await _require_owned_restaurant(db, restaurant_id, owner)

    result = await db.execute(
        select(Order)
        .where(Order.restaurant_id == restaurant.id)
        .options(selectinload(Order.items).selectinload(OrderItem.menu_item))
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    orders = list(result.scalars().all())

    logger.info(f"Exporting {len(orders)} orders of restaurant #{restaurant.id} as {format}")

    if format == "csv":
        return ExportResult(format="csv", content=orders_to_csv(orders), filename="sales_report.csv")

    return ExportResult(
        format="json",
        content=[serialize_order(o, resolve_menu_items=True) for o in orders],
    )
