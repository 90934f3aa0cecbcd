"""
Tests for the card and PayPal payment workflow.

Tests: intent creation and reuse, processor outages, no lock held across a
slow processor call, confirmation with reservation and sales, duplicate and
concurrent triggers, amount checks, declines and retries, late events,
payments for orders off the online path, double sales of one original,
client callback and webhook handling, PayPal approval and capture.
"""
import asyncio
import time

import pytest
from sqlalchemy import func, select

from db_models import Artwork, FulfillmentIssue, PaymentAttempt, Sale
from domain.constants import PROVIDER_SIMULATED, PROVIDER_SIMULATED_PAYPAL
from domain.enums import AttemptStatus, IntentStatus, IssueCode, OrderStatus, PaymentMethod
from domain.results import ErrorCode
from services import bank_transfer_service, order_ledger, payment_service
from services.payment_gateway import GatewayEvent, GatewayEventType, IntentSnapshot
from tests.factories import place_order, seed_artworks


async def _attempts(db, order_id):
    res = await db.execute(
        select(PaymentAttempt)
        .where(PaymentAttempt.order_id == order_id)
        .order_by(PaymentAttempt.id)
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def _issues(db, order_id=None):
    query = select(FulfillmentIssue)
    if order_id:
        query = query.where(FulfillmentIssue.order_id == order_id)
    return list((await db.execute(query)).scalars().all())


async def _artwork(db, artwork_id):
    res = await db.execute(
        select(Artwork).where(Artwork.id == artwork_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def _pay(db, gateway, order):
    """Open an intent, succeed it at the processor, confirm it."""
    handle = (await payment_service.initiate_payment(db, gateway, order.id)).value
    gateway.complete_intent(handle.external_payment_id)
    confirmed = await payment_service.confirm_payment(
        db, order.id, handle.external_payment_id, handle.amount_minor, handle.currency
    )
    await db.commit()
    return handle, confirmed


class TestInitiatePayment:

    @pytest.mark.integration
    async def test_opens_intent_for_order_total(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)

        outcome = await payment_service.initiate_payment(db_session, gateway, order.id)

        assert outcome.ok
        handle = outcome.value
        assert handle.amount_minor == 206_000
        assert handle.currency == "EUR"
        assert handle.client_secret
        assert handle.reused is False
        attempts = await _attempts(db_session, order.id)
        assert [a.status for a in attempts] == [AttemptStatus.ACTIVE.value]
        # Opening an intent never moves the order
        assert order.status == OrderStatus.PENDING.value

    @pytest.mark.integration
    async def test_second_call_reuses_active_intent(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)

        first = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        second = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        assert second.external_payment_id == first.external_payment_id
        assert second.reused is True
        assert len(await _attempts(db_session, order.id)) == 1

    @pytest.mark.unit
    def test_processor_key_is_deterministic(self):
        assert payment_service.processor_idempotency_key("abc", 2) == "order-abc-attempt-2"

    @pytest.mark.integration
    @pytest.mark.parametrize("outage,code", [("timeout", ErrorCode.GATEWAY_TIMEOUT), ("error", ErrorCode.GATEWAY_ERROR)])
    async def test_processor_outage_leaves_order_untouched(
        self, db_session, gateway, artworks, shipping_address, contact, outage, code
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        gateway.outage = outage

        outcome = await payment_service.initiate_payment(db_session, gateway, order.id)

        assert outcome.error == code
        assert await _attempts(db_session, order.id) == []
        reloaded = await _artwork(db_session, "art-small")
        assert reloaded.is_available is True

        # Retry once the processor is back
        gateway.outage = None
        assert (await payment_service.initiate_payment(db_session, gateway, order.id)).ok

    @pytest.mark.integration
    async def test_paid_order_cannot_open_intent(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        await _pay(db_session, gateway, order)

        outcome = await payment_service.initiate_payment(db_session, gateway, order.id)

        assert outcome.error == ErrorCode.STALE_TRANSITION

    @pytest.mark.integration
    async def test_unknown_order(self, db_session, gateway):
        outcome = await payment_service.initiate_payment(db_session, gateway, "missing")
        assert outcome.error == ErrorCode.NOT_FOUND


class TestConfirmPayment:

    @pytest.mark.integration
    async def test_marks_paid_reserves_and_records_sales(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)

        handle, confirmed = await _pay(db_session, gateway, order)

        assert confirmed.ok
        paid = confirmed.value.order
        assert paid.status == OrderStatus.PAID.value
        assert paid.payment_reference == handle.external_payment_id
        assert paid.payment_method == PaymentMethod.CARD.value
        assert confirmed.value.duplicate is False
        assert confirmed.value.reservation.reserved == ("art-small",)
        assert confirmed.value.conflicts == ()

        artwork = await _artwork(db_session, "art-small")
        assert artwork.is_available is False
        assert artwork.sold_order_id == order.id

        attempts = await _attempts(db_session, order.id)
        assert attempts[0].status == AttemptStatus.SUCCEEDED.value

        sales = (await db_session.execute(select(Sale))).scalars().all()
        assert len(sales) == 1
        assert sales[0].amount_minor == 190_000
        assert sales[0].gallery_commission_minor == 76_000
        assert sales[0].artist_earning_minor == 114_000
        assert sales[0].artist_id == "artist-1"

    @pytest.mark.integration
    async def test_same_trigger_twice_is_duplicate(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle, _ = await _pay(db_session, gateway, order)

        again = await payment_service.confirm_payment(
            db_session, order.id, handle.external_payment_id, handle.amount_minor, "EUR"
        )

        assert again.ok
        assert again.value.duplicate is True
        assert again.value.order.status == OrderStatus.PAID.value
        sale_count = (await db_session.execute(select(func.count(Sale.id)))).scalar_one()
        assert sale_count == 1
        assert await _issues(db_session) == []

    @pytest.mark.integration
    async def test_amount_mismatch_leaves_order_pending(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        outcome = await payment_service.confirm_payment(
            db_session, order.id, handle.external_payment_id, 190_000, "EUR"
        )

        assert outcome.error == ErrorCode.AMOUNT_MISMATCH
        assert outcome.details["expected_amount"] == 206_000
        assert outcome.details["received_amount"] == 190_000
        reloaded = (await order_ledger.get_order(db_session, order.id)).value
        assert reloaded.status == OrderStatus.PENDING.value
        assert (await _artwork(db_session, "art-small")).is_available is True

    @pytest.mark.integration
    async def test_currency_mismatch(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        outcome = await payment_service.confirm_payment(
            db_session, order.id, handle.external_payment_id, 206_000, "USD"
        )
        assert outcome.error == ErrorCode.AMOUNT_MISMATCH

    @pytest.mark.integration
    async def test_card_payment_on_bank_transfer_order_is_flagged(
        self, db_session, gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        await bank_transfer_service.declare_transfer_sent(db_session, order.id)

        outcome = await payment_service.confirm_payment(
            db_session, order.id, handle.external_payment_id, handle.amount_minor, "EUR"
        )

        assert outcome.error == ErrorCode.STALE_TRANSITION
        issues = await _issues(db_session, order.id)
        assert [i.code for i in issues] == [IssueCode.UNEXPECTED_PAYMENT.value]
        assert issues[0].external_payment_id == handle.external_payment_id

        # A retried webhook does not open a second issue
        await payment_service.confirm_payment(
            db_session, order.id, handle.external_payment_id, handle.amount_minor, "EUR"
        )
        assert len(await _issues(db_session, order.id)) == 1

    @pytest.mark.integration
    async def test_concurrent_triggers_pay_once(self, session_factory, gateway, shipping_address, contact):
        async with session_factory() as s:
            await seed_artworks(s)
            order = await place_order(s, ["art-small"], shipping_address, contact)
            handle = (await payment_service.initiate_payment(s, gateway, order.id)).value
            await s.commit()
        gateway.complete_intent(handle.external_payment_id)

        async def trigger():
            async with session_factory() as s:
                outcome = await payment_service.confirm_payment(
                    s, order.id, handle.external_payment_id, handle.amount_minor, "EUR"
                )
                await s.commit()
                return outcome

        results = await asyncio.gather(trigger(), trigger(), trigger())

        assert all(r.ok for r in results)
        assert sorted(r.value.duplicate for r in results) == [False, True, True]
        async with session_factory() as s:
            assert (await s.execute(select(func.count(Sale.id)))).scalar_one() == 1
            assert await _issues(s) == []

    @pytest.mark.integration
    async def test_two_orders_for_one_original(self, db_session, gateway, artworks, shipping_address, contact):
        first = await place_order(db_session, ["art-small"], shipping_address, contact)
        second = await place_order(db_session, ["art-small"], shipping_address, contact)

        _, won = await _pay(db_session, gateway, first)
        _, lost = await _pay(db_session, gateway, second)

        assert won.value.conflicts == ()
        # The money is real: the loser is PAID too, with an issue to resolve
        assert lost.ok
        assert lost.value.order.status == OrderStatus.PAID.value
        assert lost.value.reservation.fulfillment_error == ErrorCode.ARTWORK_ALREADY_SOLD
        assert lost.value.conflicts[0].held_by_order_id == first.id

        issues = await _issues(db_session, second.id)
        assert [i.code for i in issues] == [IssueCode.ARTWORK_ALREADY_SOLD.value]
        assert issues[0].conflicting_order_id == first.id
        assert (await _artwork(db_session, "art-small")).sold_order_id == first.id


class TestPaymentFailure:

    @pytest.mark.integration
    async def test_decline_then_retry_on_same_order(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        first = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        failed = await payment_service.record_payment_failure(
            db_session, order.id, first.external_payment_id, "Insufficient funds"
        )

        assert failed.value.recorded is True
        assert failed.value.order.status == OrderStatus.PAYMENT_FAILED.value
        assert failed.value.order.failure_reason == "Insufficient funds"
        assert (await _artwork(db_session, "art-small")).is_available is True

        retry = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        assert retry.external_payment_id != first.external_payment_id
        gateway.complete_intent(retry.external_payment_id)
        paid = await payment_service.confirm_payment(
            db_session, order.id, retry.external_payment_id, retry.amount_minor, "EUR"
        )

        assert paid.ok
        assert paid.value.order.status == OrderStatus.PAID.value
        statuses = [a.status for a in await _attempts(db_session, order.id)]
        assert statuses == [AttemptStatus.FAILED.value, AttemptStatus.SUCCEEDED.value]

    @pytest.mark.integration
    async def test_failure_without_reason_uses_default(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        failed = await payment_service.record_payment_failure(db_session, order.id, handle.external_payment_id, None)

        assert failed.value.order.failure_reason

    @pytest.mark.integration
    async def test_late_failure_after_success_is_ignored(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle, _ = await _pay(db_session, gateway, order)

        late = await payment_service.record_payment_failure(
            db_session, order.id, handle.external_payment_id, "Card declined"
        )

        assert late.ok
        assert late.value.recorded is False
        assert late.value.order.status == OrderStatus.PAID.value

    @pytest.mark.integration
    async def test_unknown_payment_failure_is_ignored(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        outcome = await payment_service.record_payment_failure(db_session, order.id, "pi_unknown", "nope")
        assert outcome.value.recorded is False
        assert outcome.value.order.status == OrderStatus.PENDING.value


class TestConfirmFromClient:

    @pytest.mark.integration
    async def test_reads_outcome_from_processor(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.complete_intent(handle.external_payment_id)

        outcome = await payment_service.confirm_from_client(
            db_session, gateway, order.id, handle.external_payment_id
        )

        assert outcome.ok
        assert outcome.value.payment_status == IntentStatus.SUCCEEDED
        assert outcome.value.order.status == OrderStatus.PAID.value

    @pytest.mark.integration
    async def test_unfinished_intent_changes_nothing(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value

        outcome = await payment_service.confirm_from_client(
            db_session, gateway, order.id, handle.external_payment_id
        )

        assert outcome.value.payment_status == IntentStatus.REQUIRES_ACTION
        assert outcome.value.order.status == OrderStatus.PENDING.value

    @pytest.mark.integration
    async def test_declined_intent_records_failure(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.complete_intent(handle.external_payment_id, succeed=False, failure_reason="Card expired")

        outcome = await payment_service.confirm_from_client(
            db_session, gateway, order.id, handle.external_payment_id
        )

        assert outcome.value.order.status == OrderStatus.PAYMENT_FAILED.value
        assert outcome.value.order.failure_reason == "Card expired"

    @pytest.mark.integration
    async def test_payment_of_another_order_is_not_found(self, db_session, gateway, artworks, shipping_address, contact):
        a = await place_order(db_session, ["art-small"], shipping_address, contact)
        b = await place_order(db_session, ["art-large"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, a.id)).value

        outcome = await payment_service.confirm_from_client(db_session, gateway, b.id, handle.external_payment_id)

        assert outcome.error == ErrorCode.NOT_FOUND

    @pytest.mark.integration
    async def test_processor_down(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.outage = "timeout"

        outcome = await payment_service.confirm_from_client(
            db_session, gateway, order.id, handle.external_payment_id
        )
        assert outcome.error == ErrorCode.GATEWAY_TIMEOUT


class TestWebhookEvents:

    @pytest.mark.integration
    async def test_success_then_retry(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.complete_intent(handle.external_payment_id)
        payload, headers = gateway.build_webhook(handle.external_payment_id)
        event = await gateway.parse_webhook(payload, headers)

        first = await payment_service.handle_webhook_event(db_session, event)
        again = await payment_service.handle_webhook_event(db_session, event)

        assert first.value.action == "confirmed"
        assert first.value.order_id == order.id
        assert again.value.action == "duplicate"

    @pytest.mark.integration
    async def test_failure_event(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.complete_intent(handle.external_payment_id, succeed=False)
        event = await gateway.parse_webhook(*gateway.build_webhook(handle.external_payment_id))

        result = await payment_service.handle_webhook_event(db_session, event)

        assert result.value.action == "failure_recorded"

    @pytest.mark.integration
    async def test_mismatched_amount_is_rejected_not_raised(
        self, db_session, gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        gateway.complete_intent(handle.external_payment_id, amount_minor=1_000)
        event = await gateway.parse_webhook(*gateway.build_webhook(handle.external_payment_id))

        result = await payment_service.handle_webhook_event(db_session, event)

        assert result.ok
        assert result.value.action == "rejected"
        assert result.value.error == ErrorCode.AMOUNT_MISMATCH

    @pytest.mark.integration
    async def test_unknown_payment_is_ignored(self, db_session):
        event = GatewayEvent(
            event_id="evt_1",
            type=GatewayEventType.PAYMENT_SUCCEEDED,
            intent=IntentSnapshot(
                external_payment_id="pi_nobody",
                status=IntentStatus.SUCCEEDED,
                amount_minor=100,
                currency="EUR",
            ),
        )

        result = await payment_service.handle_webhook_event(db_session, event)

        assert result.value.action == "ignored"
        assert result.value.error == ErrorCode.NOT_FOUND

    @pytest.mark.integration
    async def test_irrelevant_event_type(self, db_session):
        event = GatewayEvent(event_id="evt_2", type=GatewayEventType.IGNORED, raw_type="charge.updated")
        result = await payment_service.handle_webhook_event(db_session, event)
        assert result.value.action == "ignored"


class StallingGateway:
    """Simulated processor whose create_intent stalls before answering."""

    def __init__(self, inner, delay: float = 0.0, during_call=None):
        self.inner = inner
        self.provider = inner.provider
        self.delay = delay
        self.during_call = during_call
        self.calling = asyncio.Event()

    async def create_intent(self, **kwargs):
        self.calling.set()
        if self.during_call is not None:
            await self.during_call()
        await asyncio.sleep(self.delay)
        return await self.inner.create_intent(**kwargs)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class TestProcessorCallTransaction:

    @pytest.mark.integration
    async def test_slow_processor_does_not_block_other_requests(
        self, session_factory, gateway, shipping_address, contact
    ):
        async with session_factory() as s:
            await seed_artworks(s)
            order = await place_order(s, ["art-small"], shipping_address, contact)
            await s.commit()
        slow = StallingGateway(gateway, delay=1.0)

        async def initiate():
            async with session_factory() as s:
                outcome = await payment_service.initiate_payment(s, slow, order.id)
                await s.commit()
                return outcome

        async def read_while_processor_is_busy():
            await slow.calling.wait()
            started = time.monotonic()
            async with session_factory() as s:
                found = await order_ledger.get_order(s, order.id)
                await s.commit()
            return found, time.monotonic() - started

        initiated, (found, elapsed) = await asyncio.gather(initiate(), read_while_processor_is_busy())

        assert found.ok
        assert elapsed < 0.5
        assert initiated.ok
        async with session_factory() as s:
            assert [a.status for a in await _attempts(s, order.id)] == [AttemptStatus.ACTIVE.value]

    @pytest.mark.integration
    async def test_order_moved_during_processor_call(self, db_session, gateway, artworks, shipping_address, contact):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)

        async def customer_switches_to_bank_transfer():
            assert (await bank_transfer_service.declare_transfer_sent(db_session, order.id)).ok
            await db_session.commit()

        racing = StallingGateway(gateway, during_call=customer_switches_to_bank_transfer)
        outcome = await payment_service.initiate_payment(db_session, racing, order.id)

        assert outcome.error == ErrorCode.STALE_TRANSITION
        assert outcome.details["actual"] == OrderStatus.AWAITING_VERIFICATION.value
        assert await _attempts(db_session, order.id) == []


class TestPayPalPayments:

    @pytest.mark.integration
    async def test_approval_link_instead_of_client_secret(
        self, db_session, paypal_gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)

        handle = (await payment_service.initiate_payment(db_session, paypal_gateway, order.id)).value

        assert handle.client_secret is None
        assert handle.redirect_url.endswith(f"?token={handle.external_payment_id}")
        assert handle.provider == PROVIDER_SIMULATED_PAYPAL
        [attempt] = await _attempts(db_session, order.id)
        assert attempt.redirect_url == handle.redirect_url

    @pytest.mark.integration
    async def test_capture_on_return_marks_paid_by_paypal(
        self, db_session, paypal_gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, paypal_gateway, order.id)).value
        paypal_gateway.complete_intent(handle.external_payment_id)

        outcome = await payment_service.confirm_from_client(
            db_session, paypal_gateway, order.id, handle.external_payment_id
        )

        assert outcome.value.payment_status == IntentStatus.SUCCEEDED
        paid = outcome.value.order
        assert paid.status == OrderStatus.PAID.value
        assert paid.payment_method == PaymentMethod.PAYPAL.value
        assert paid.payment_reference == handle.external_payment_id
        assert (await _artwork(db_session, "art-small")).is_available is False

    @pytest.mark.integration
    async def test_capture_webhook_marks_paid_by_paypal(
        self, db_session, paypal_gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, paypal_gateway, order.id)).value
        paypal_gateway.complete_intent(handle.external_payment_id)
        event = await paypal_gateway.parse_webhook(*paypal_gateway.build_webhook(handle.external_payment_id))

        result = await payment_service.handle_webhook_event(db_session, event)

        assert result.value.action == "confirmed"
        reloaded = (await order_ledger.get_order(db_session, order.id)).value
        assert reloaded.payment_method == PaymentMethod.PAYPAL.value

    @pytest.mark.integration
    async def test_switching_from_card_supersedes_card_intent(
        self, db_session, gateway, paypal_gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        card = (await payment_service.initiate_payment(db_session, gateway, order.id)).value
        paypal = (await payment_service.initiate_payment(db_session, paypal_gateway, order.id)).value

        assert paypal.external_payment_id != card.external_payment_id
        assert paypal.reused is False
        attempts = await _attempts(db_session, order.id)
        assert [(a.provider, a.status) for a in attempts] == [
            (PROVIDER_SIMULATED, AttemptStatus.SUPERSEDED.value),
            (PROVIDER_SIMULATED_PAYPAL, AttemptStatus.ACTIVE.value),
        ]

    @pytest.mark.integration
    async def test_paypal_payment_cannot_be_confirmed_through_card_processor(
        self, db_session, gateway, paypal_gateway, artworks, shipping_address, contact
    ):
        order = await place_order(db_session, ["art-small"], shipping_address, contact)
        handle = (await payment_service.initiate_payment(db_session, paypal_gateway, order.id)).value
        paypal_gateway.complete_intent(handle.external_payment_id)

        outcome = await payment_service.confirm_from_client(db_session, gateway, order.id, handle.external_payment_id)

        assert outcome.error == ErrorCode.NOT_FOUND
        assert (await order_ledger.get_order(db_session, order.id)).value.status == OrderStatus.PENDING.value
