"""Last-writer-wins by asserted event time."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

from entitlement_gateway.schemas.entitlement import (
    EntitlementEvent,
    EntitlementRecord,
    EventKind,
    EventSource,
)
from entitlement_gateway.services.reconciler import baseline, is_stale, reconcile


def _t(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _event(
    kind: EventKind,
    at: int,
    source: EventSource = EventSource.card_processor,
    renewal: int | None = None,
    customer: str | None = None,
    user_id: str = "u1",
) -> EntitlementEvent:
    return EntitlementEvent(
        user_id=user_id,
        source=source,
        kind=kind,
        occurred_at=_t(at),
        renewal_at=_t(renewal) if renewal is not None else None,
        customer_ref=customer,
        raw_event_type="test",
    )


ACTIVATE = EventKind.activate
DEACTIVATE = EventKind.deactivate


class TestApply:
    def test_first_event_builds_on_baseline(self):
        record = reconcile(None, _event(ACTIVATE, 100, customer="cus_abc"))
        assert record == EntitlementRecord(
            user_id="u1",
            is_entitled=True,
            renewal_at=None,
            billing_customer_ref="cus_abc",
            last_event_at=_t(100),
        )

    def test_baseline_is_not_entitled(self):
        record = baseline("u1")
        assert record.is_entitled is False
        assert record.renewal_at is None
        assert record.last_event_at is None

    def test_deactivation_clears_renewal(self):
        active = reconcile(None, _event(ACTIVATE, 100, renewal=5000))
        assert active.renewal_at == _t(5000)
        inactive = reconcile(active, _event(DEACTIVATE, 200))
        assert inactive.is_entitled is False
        assert inactive.renewal_at is None

    def test_activation_without_renewal_overwrites_with_none(self):
        active = reconcile(None, _event(ACTIVATE, 100, renewal=5000))
        again = reconcile(active, _event(ACTIVATE, 150))
        assert again.renewal_at is None
        assert again.is_entitled is True

    def test_equal_timestamp_goes_to_incoming(self):
        active = reconcile(None, _event(ACTIVATE, 100))
        result = reconcile(active, _event(DEACTIVATE, 100, source=EventSource.iap_aggregator))
        assert result.is_entitled is False
        assert result.last_event_at == _t(100)


class TestStaleness:
    def test_older_event_leaves_record_untouched(self):
        current = reconcile(None, _event(ACTIVATE, 100, customer="cus_abc", renewal=5000))
        stale = _event(DEACTIVATE, 99, source=EventSource.iap_aggregator)
        assert is_stale(current, stale) is True
        assert reconcile(current, stale) is current

    def test_nothing_is_stale_against_baseline(self):
        assert is_stale(None, _event(ACTIVATE, 0)) is False
        assert is_stale(baseline("u1"), _event(ACTIVATE, 0)) is False

    def test_equal_timestamp_is_not_stale(self):
        current = reconcile(None, _event(ACTIVATE, 100))
        assert is_stale(current, _event(DEACTIVATE, 100)) is False


class TestProperties:
    def test_idempotent_replay(self):
        event = _event(ACTIVATE, 100, renewal=5000, customer="cus_abc")
        once = reconcile(None, event)
        twice = reconcile(once, event)
        thrice = reconcile(twice, event)
        assert once == twice == thrice

    def test_out_of_order_convergence(self):
        a = _event(ACTIVATE, 10)
        b = _event(DEACTIVATE, 20, source=EventSource.iap_aggregator)
        ab = reconcile(reconcile(None, a), b)
        ba = reconcile(reconcile(None, b), a)
        assert ab == ba
        assert ab.is_entitled is False
        assert ab.last_event_at == _t(20)

    def test_any_order_converges_to_newest(self):
        events = [
            _event(ACTIVATE, 10, renewal=900, customer="cus_1"),
            _event(DEACTIVATE, 20, source=EventSource.iap_aggregator),
            _event(ACTIVATE, 30, source=EventSource.iap_aggregator, renewal=1000),
            _event(DEACTIVATE, 25),
        ]
        results = set()
        for order in itertools.permutations(events):
            record = None
            for event in order:
                record = reconcile(record, event)
            results.add((record.is_entitled, record.renewal_at, record.last_event_at))
        assert results == {(True, _t(1000), _t(30))}

    def test_customer_ref_never_cleared(self):
        record = reconcile(None, _event(ACTIVATE, 100, customer="cus_abc"))
        record = reconcile(record, _event(DEACTIVATE, 200, source=EventSource.iap_aggregator))
        record = reconcile(record, _event(ACTIVATE, 300))
        assert record.billing_customer_ref == "cus_abc"

    def test_customer_ref_replaced_by_newer_one(self):
        record = reconcile(None, _event(ACTIVATE, 100, customer="cus_old"))
        record = reconcile(record, _event(ACTIVATE, 200, customer="cus_new"))
        assert record.billing_customer_ref == "cus_new"
