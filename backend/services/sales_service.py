"""
Sales ledger - one row per order line once an order is PAID.

The gallery keeps gallery_commission_percent of each line, the artist gets
the rest. Integer minor units: the gallery share rounds down, the artist
share is the remainder, so the two always add up to the line amount.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, Sale
from services import catalog_service

logger = logging.getLogger(__name__)


def split_commission(amount_minor: int, commission_percent: int | None = None) -> tuple[int, int]:
    """Return (gallery_commission_minor, artist_earning_minor)."""
    percent = settings.gallery_commission_percent if commission_percent is None else commission_percent
    gallery = amount_minor * percent // 100
    return gallery, amount_minor - gallery


async def record_sales(db: AsyncSession, order: Order) -> list[Sale]:
    """Write the sale rows for a PAID order. Lines already recorded are skipped."""
    existing = await db.execute(select(Sale.artwork_id).where(Sale.order_id == order.id))
    recorded = set(existing.scalars().all())

    artworks = await catalog_service.get_artworks(db, [i.artwork_id for i in order.items])
    sales: list[Sale] = []
    for item in order.items:
        if item.artwork_id in recorded:
            continue
        amount = item.quantity * item.unit_price_minor
        gallery, artist = split_commission(amount)
        artwork = artworks.get(item.artwork_id)
        sale = Sale(
            order_id=order.id,
            artwork_id=item.artwork_id,
            artist_id=artwork.artist_id if artwork else None,
            amount_minor=amount,
            gallery_commission_minor=gallery,
            artist_earning_minor=artist,
            payment_method=order.payment_method or "UNKNOWN",
        )
        db.add(sale)
        sales.append(sale)
        recorded.add(item.artwork_id)

    if sales:
        await db.flush()
        logger.info(f"Order {order.order_number}: {len(sales)} sale(s) recorded")
    return sales


async def list_sales(db: AsyncSession, *, limit: int = 50, offset: int = 0) -> tuple[list[Sale], int]:
    total = (await db.execute(select(func.count(Sale.id)))).scalar_one()
    res = await db.execute(
        select(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit)
    )
    return list(res.scalars().all()), total


async def sales_summary(db: AsyncSession) -> dict:
    res = await db.execute(
        select(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.amount_minor), 0),
            func.coalesce(func.sum(Sale.gallery_commission_minor), 0),
            func.coalesce(func.sum(Sale.artist_earning_minor), 0),
        )
    )
    count, revenue, commission, earnings = res.one()
    return {
        "totalSales": count,
        "totalRevenue": int(revenue),
        "totalCommission": int(commission),
        "totalArtistEarnings": int(earnings),
    }
