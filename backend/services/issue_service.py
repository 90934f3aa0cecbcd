"""
Fulfilment issue queue - paid orders that need a human.

Opened by the reservation step (artwork already sold to another order) and
by the payment workflow (card money arrived for an order that is no longer
on the card path). Resolution is manual, e.g. a refund issued in the
processor dashboard, followed by resolve_issue().
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import FulfillmentIssue
from domain.enums import IssueCode
from domain.results import ErrorCode, Outcome

logger = logging.getLogger(__name__)


async def open_issue(
    db: AsyncSession,
    *,
    order_id: str,
    code: IssueCode,
    artwork_id: str | None = None,
    conflicting_order_id: str | None = None,
    external_payment_id: str | None = None,
    detail: str | None = None,
) -> FulfillmentIssue:
    """
    Record an issue, once.

    A second report of the same unresolved (order, code, artwork, payment)
    returns the existing row so retried webhooks do not pile up duplicates.
    """
    query = select(FulfillmentIssue).where(
        FulfillmentIssue.order_id == order_id,
        FulfillmentIssue.code == code.value,
        FulfillmentIssue.resolved_at.is_(None),
    )
    query = query.where(
        FulfillmentIssue.artwork_id == artwork_id if artwork_id else FulfillmentIssue.artwork_id.is_(None)
    )
    if external_payment_id:
        query = query.where(FulfillmentIssue.external_payment_id == external_payment_id)
    existing = (await db.execute(query)).scalars().first()
    if existing:
        return existing

    issue = FulfillmentIssue(
        order_id=order_id,
        code=code.value,
        artwork_id=artwork_id,
        conflicting_order_id=conflicting_order_id,
        external_payment_id=external_payment_id,
        detail=detail,
    )
    db.add(issue)
    await db.flush()
    logger.warning(
        f"Fulfilment issue #{issue.id} opened: {code.value} order={order_id}"
        + (f" artwork={artwork_id}" if artwork_id else "")
    )
    return issue


async def list_issues(
    db: AsyncSession,
    *,
    unresolved_only: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[FulfillmentIssue], int]:
    """Newest first. Returns (page, total)."""
    base = select(FulfillmentIssue)
    if unresolved_only:
        base = base.where(FulfillmentIssue.resolved_at.is_(None))

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    res = await db.execute(
        base.order_by(FulfillmentIssue.created_at.desc(), FulfillmentIssue.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(res.scalars().all()), total


async def resolve_issue(db: AsyncSession, issue_id: int, note: str) -> Outcome[FulfillmentIssue]:
    issue = await db.get(FulfillmentIssue, issue_id)
    if issue is None:
        return Outcome.failure(ErrorCode.NOT_FOUND, "Issue not found", id=str(issue_id))
    if issue.resolved_at is None:
        issue.resolved_at = datetime.now(timezone.utc)
        issue.resolution_note = note
        await db.flush()
        logger.info(f"Fulfilment issue #{issue.id} resolved")
    return Outcome.success(issue)
