"""
Catalogue service - artwork lookups and cart snapshot capture.

The catalogue is a read-only collaborator of the checkout core: prices are
read here exactly once, when the snapshot is built. Availability is read
here but only ever written by reservation_service.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Artwork
from domain.cart import CartLine, CartSnapshot
from domain.results import ErrorCode, Outcome

logger = logging.getLogger(__name__)


async def create_artwork(
    db: AsyncSession,
    *,
    title: str,
    artist_id: str,
    price_minor: int,
    currency: str,
    artwork_id: str | None = None,
) -> Artwork:
    artwork = Artwork(
        title=title,
        artist_id=artist_id,
        price_minor=price_minor,
        currency=currency.upper(),
        is_available=True,
    )
    if artwork_id:
        artwork.id = artwork_id
    db.add(artwork)
    await db.flush()
    return artwork


async def get_artwork(db: AsyncSession, artwork_id: str) -> Artwork | None:
    res = await db.execute(
        select(Artwork)
        .where(Artwork.id == artwork_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_artworks(db: AsyncSession, artwork_ids: list[str]) -> dict[str, Artwork]:
    if not artwork_ids:
        return {}
    res = await db.execute(
        select(Artwork)
        .where(Artwork.id.in_(artwork_ids))
        .execution_options(populate_existing=True)
    )
    return {a.id: a for a in res.scalars().all()}


async def build_snapshot(
    db: AsyncSession,
    *,
    items: list[dict],
    currency: str,
) -> Outcome[CartSnapshot]:
    """
    Capture an immutable snapshot of the cart.

    items: [{artwork_id: str, quantity: int}]

    Quantities are passed through untouched; the pricing calculator is the
    one that rejects them. Unknown artworks → NOT_FOUND, sold or
    differently-priced artworks → ARTWORK_UNAVAILABLE / UNSUPPORTED_CURRENCY.
    """
    currency = currency.upper()
    ids = [str(i["artwork_id"]) for i in items]
    artworks = await get_artworks(db, list(dict.fromkeys(ids)))

    lines: list[CartLine] = []
    for item in items:
        artwork_id = str(item["artwork_id"])
        artwork = artworks.get(artwork_id)
        if artwork is None:
            return Outcome.failure(
                ErrorCode.NOT_FOUND,
                f"Artwork {artwork_id} not found",
                id=artwork_id,
            )
        if not artwork.is_available:
            return Outcome.failure(
                ErrorCode.ARTWORK_UNAVAILABLE,
                f'Artwork "{artwork.title}" is not available',
                artwork_id=artwork_id,
            )
        if artwork.currency != currency:
            return Outcome.failure(
                ErrorCode.UNSUPPORTED_CURRENCY,
                f"Artwork {artwork_id} is priced in {artwork.currency}, not {currency}",
                artwork_id=artwork_id,
            )
        lines.append(
            CartLine(
                artwork_id=artwork.id,
                quantity=int(item.get("quantity", 1)),
                unit_price_minor=int(artwork.price_minor),
                title=artwork.title,
            )
        )

    return Outcome.success(CartSnapshot.of(lines, currency))
