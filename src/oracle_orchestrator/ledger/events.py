"""
Event type constants for the request ledger.

Events use "domain:action" format in PAST TENSE: they record facts the ledger
has already committed, never requests for something to happen.

=============================================================================
USAGE
=============================================================================

    from oracle_orchestrator.ledger.events import LedgerEvents

    events = ledger.events_since(cursor, event_type=LedgerEvents.REQUEST_ADDED)

=============================================================================
"""


class LedgerEvents:
    """All event types a request ledger appends to its log."""

    REQUEST_ADDED = "request:added"
    """
    Appended by ``create_request`` in the same transaction as the request row.

    Detail: {
        "request_id": int,
        "params": {"url": str, "method": str, "headers": str, "body": str},
        "pick": str,
        "oracle": str,
        "recipient": str
    }
    """

    REQUEST_FULFILLED = "request:fulfilled"
    """
    Appended by ``fulfil_request`` in the same transaction as the response row.

    Detail: {
        "request_id": int,
        "response": {"body": str}
    }
    """


def get_all_event_types() -> list[str]:
    """Return every event type constant defined on :class:`LedgerEvents`."""
    return [
        value
        for name, value in vars(LedgerEvents).items()
        if not name.startswith("_") and isinstance(value, str)
    ]


def is_valid_event_type(event_type: str) -> bool:
    """Check whether ``event_type`` is a known ledger event type."""
    return event_type in get_all_event_types()
