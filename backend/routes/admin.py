"""
Administrator endpoints - catalogue, manual reconciliation, issue queue, sales.

All routes require Authorization: Bearer <jwt> with role "admin".

    POST /admin/artworks
    GET  /admin/orders?status=
    POST /admin/orders/{order_id}/mark-paid     - bank transfer received
    POST /admin/orders/{order_id}/cancel        - transfer never arrived
    GET  /admin/fulfillment-issues?includeResolved=
    POST /admin/fulfillment-issues/{issue_id}/resolve
    GET  /admin/sales
    GET  /admin/sales/summary
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import Pagination, pagination_params, require_admin
from domain.enums import OrderStatus
from domain.errors import ConflictError, ValidationError, raise_for_outcome
from domain.responses import paginated_response, success_response
from models import (
    ArtworkCreateRequest,
    ArtworkView,
    CancelOrderRequest,
    FulfillmentIssueView,
    MarkPaidRequest,
    OrderSummary,
    ResolveIssueRequest,
    SaleView,
)
from services import catalog_service, issue_service, order_ledger, reconciliation_service, sales_service
from utils.validators import validate_currency_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ── Catalogue ───────────────────────────────────────────────────────

@router.post("/artworks", status_code=status.HTTP_201_CREATED)
async def create_artwork(req: ArtworkCreateRequest, db: AsyncSession = Depends(get_db)):
    currency = validate_currency_code(req.currency or settings.default_currency)
    if req.id and await catalog_service.get_artwork(db, req.id):
        raise ConflictError(f"Artwork {req.id} already exists")

    artwork = await catalog_service.create_artwork(
        db,
        title=req.title,
        artist_id=req.artist_id,
        price_minor=req.price_minor,
        currency=currency,
        artwork_id=req.id,
    )
    await db.commit()
    logger.info(f"Artwork {artwork.id} added to catalogue")
    return success_response(data=ArtworkView.from_artwork(artwork).to_wire())


# ── Orders ──────────────────────────────────────────────────────────

@router.get("/orders")
async def list_orders(
    status_filter: str | None = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    order_status = None
    if status_filter:
        try:
            order_status = OrderStatus(status_filter.upper())
        except ValueError:
            raise ValidationError(f"Unknown order status: {status_filter}", field="status")

    orders, total = await order_ledger.list_orders(
        db, status=order_status, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [OrderSummary.from_order(o).to_wire() for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.post("/orders/{order_id}/mark-paid")
async def mark_transfer_received(
    order_id: str,
    req: MarkPaidRequest | None = None,
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Manual PAID transition once the bank transfer shows up on the statement."""
    outcome = await reconciliation_service.mark_transfer_received(
        db, order_id, bank_reference=req.bank_reference if req else None
    )
    raise_for_outcome(outcome, identifier=order_id)
    await db.commit()
    logger.info(f"Order {order_id} marked paid by {admin}")

    result = outcome.value
    conflicts = result.reservation.conflicts if result.reservation else ()
    return success_response(
        data=OrderSummary.from_order(result.order).to_wire(),
        meta={"conflicts": [c.artwork_id for c in conflicts]},
    )


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    req: CancelOrderRequest | None = None,
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    outcome = await reconciliation_service.cancel_order(db, order_id, reason=req.reason if req else None)
    raise_for_outcome(outcome, identifier=order_id)
    await db.commit()
    logger.info(f"Order {order_id} cancelled by {admin}")
    return success_response(data=OrderSummary.from_order(outcome.value).to_wire())


# ── Fulfilment issues ───────────────────────────────────────────────

@router.get("/fulfillment-issues")
async def list_fulfillment_issues(
    include_resolved: bool = Query(False, alias="includeResolved"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    issues, total = await issue_service.list_issues(
        db,
        unresolved_only=not include_resolved,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [FulfillmentIssueView.from_issue(i).to_wire() for i in issues],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.post("/fulfillment-issues/{issue_id}/resolve")
async def resolve_fulfillment_issue(
    issue_id: int,
    req: ResolveIssueRequest,
    db: AsyncSession = Depends(get_db),
):
    outcome = await issue_service.resolve_issue(db, issue_id, req.note)
    raise_for_outcome(outcome, resource_type="Fulfillment issue", identifier=str(issue_id))
    await db.commit()
    return success_response(data=FulfillmentIssueView.from_issue(outcome.value).to_wire())


# ── Sales ───────────────────────────────────────────────────────────

@router.get("/sales")
async def list_sales(
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    sales, total = await sales_service.list_sales(db, limit=page["limit"], offset=page["offset"])
    return paginated_response(
        [SaleView.from_sale(s).to_wire() for s in sales],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/sales/summary")
async def sales_summary(db: AsyncSession = Depends(get_db)):
    return success_response(data=await sales_service.sales_summary(db))
