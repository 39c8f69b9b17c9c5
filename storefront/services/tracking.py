"""
Order tracking log

Entries are appended to the order aggregate and flushed with the transition
that produced them; there is no update or delete path.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.order import Order, OrderStatus, OrderTracking


def append_entry(
    order: Order,
    status: OrderStatus,
    message: Optional[str] = None,
    tracking_number: Optional[str] = None,
    carrier: Optional[str] = None,
) -> OrderTracking:
    """Attach one tracking entry to an order whose tracking collection is loaded."""
    entry = OrderTracking(
        status=OrderStatus(status).value,
        message=message,
        tracking_number=tracking_number,
        carrier=carrier,
    )
    order.tracking.append(entry)
    return entry


async def list_entries(db: AsyncSession, order_id: int) -> List[OrderTracking]:
    """Tracking history in creation order."""
    result = await db.execute(
        select(OrderTracking)
        .where(OrderTracking.order_id == order_id)
        .order_by(OrderTracking.created_at, OrderTracking.id)
    )
    return list(result.scalars().all())
