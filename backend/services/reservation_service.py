"""
Availability reservation - mark the artworks of a PAID order as sold.

Each artwork is claimed with a compare-and-swap on is_available, so two
orders paid at the same moment for the same original can never both win.
The loser keeps its PAID status (the money is real) and gets an
ARTWORK_ALREADY_SOLD fulfilment issue for manual resolution.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Artwork
from domain.enums import IssueCode, OrderStatus
from domain.results import ErrorCode, Outcome
from services import issue_service, order_ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationConflict:
    artwork_id: str
    held_by_order_id: str | None  # None when the artwork no longer exists


@dataclass(frozen=True)
class ReservationResult:
    order_id: str
    reserved: tuple[str, ...] = ()
    conflicts: tuple[ReservationConflict, ...] = field(default_factory=tuple)

    @property
    def fulfillment_error(self) -> ErrorCode | None:
        return ErrorCode.ARTWORK_ALREADY_SOLD if self.conflicts else None


async def _claim(db: AsyncSession, artwork_id: str, order_id: str) -> bool:
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Artwork)
        .where(Artwork.id == artwork_id, Artwork.is_available.is_(True))
        .values(is_available=False, sold_order_id=order_id, sold_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def reserve(db: AsyncSession, order_id: str) -> Outcome[ReservationResult]:
    """
    Claim every distinct artwork of a PAID order.

    Idempotent: artworks already held by this order count as reserved.
    """
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    order = found.value

    if order.status != OrderStatus.PAID.value:
        return Outcome.failure(
            ErrorCode.ORDER_NOT_PAID,
            "Only paid orders reserve artworks",
            order_id=order_id,
            status=order.status,
        )

    reserved: list[str] = []
    conflicts: list[ReservationConflict] = []

    for artwork_id in dict.fromkeys(item.artwork_id for item in order.items):
        if await _claim(db, artwork_id, order.id):
            reserved.append(artwork_id)
            continue

        res = await db.execute(
            select(Artwork)
            .where(Artwork.id == artwork_id)
            .execution_options(populate_existing=True)
        )
        artwork = res.scalar_one_or_none()
        if artwork is not None and artwork.sold_order_id == order.id:
            reserved.append(artwork_id)
            continue

        holder = artwork.sold_order_id if artwork is not None else None
        conflicts.append(ReservationConflict(artwork_id=artwork_id, held_by_order_id=holder))
        await issue_service.open_issue(
            db,
            order_id=order.id,
            code=IssueCode.ARTWORK_ALREADY_SOLD,
            artwork_id=artwork_id,
            conflicting_order_id=holder,
            external_payment_id=order.payment_reference,
            detail=(
                f"Artwork sold to order {holder}" if holder
                else "Artwork missing from catalogue"
            ),
        )

    if conflicts:
        logger.warning(
            f"Order {order.order_number}: {len(conflicts)} artwork(s) already sold, "
            f"{len(reserved)} reserved"
        )
    else:
        logger.info(f"Order {order.order_number}: reserved {len(reserved)} artwork(s)")

    return Outcome.success(
        ReservationResult(order_id=order.id, reserved=tuple(reserved), conflicts=tuple(conflicts))
    )
