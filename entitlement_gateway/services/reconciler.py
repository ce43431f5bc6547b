from entitlement_gateway.schemas.entitlement import EntitlementEvent, EntitlementRecord, EventKind


def baseline(user_id: str) -> EntitlementRecord:
    return EntitlementRecord(user_id=user_id)


def is_stale(existing: EntitlementRecord | None, event: EntitlementEvent) -> bool:
    if existing is None or existing.last_event_at is None:
        return False
    return event.occurred_at < existing.last_event_at


def reconcile(existing: EntitlementRecord | None, event: EntitlementEvent) -> EntitlementRecord:
    """
    Last-writer-wins on the provider-asserted event time, never arrival order.

        existing.last_event_at   event.occurred_at   result
        None (never written)     any                 applied
        T                        < T                 stale, existing returned as is
        T                        >= T                applied (ties go to the event)
    """
    if existing is None:
        existing = baseline(event.user_id)

    if is_stale(existing, event):
        return existing

    return EntitlementRecord(
        user_id=existing.user_id,
        is_entitled=event.kind == EventKind.activate,
        renewal_at=event.renewal_at,
        # once known, a customer handle is never cleared
        billing_customer_ref=event.customer_ref or existing.billing_customer_ref,
        last_event_at=event.occurred_at,
    )
