"""Mapping of raw webhook event strings to internal event kinds."""

from typing import Callable, Optional

from outreach_core.domain.models import EventKind

# Ordered rules over the lowercased event string; first match wins
EVENT_KIND_RULES: list[tuple[Callable[[str], bool], EventKind]] = [
    (lambda e: e == "linked_in_messenger.campaign_new_contact", EventKind.CONNECTION_ACCEPTED),
    (lambda e: e == "linked_in_messenger.requested", EventKind.INVITE_SENT),
    (lambda e: "connection" in e and "sent" in e, EventKind.INVITE_SENT),
    (
        lambda e: "connection" in e and ("accepted" in e or "new_contact" in e),
        EventKind.CONNECTION_ACCEPTED,
    ),
    (lambda e: "new_contact" in e, EventKind.CONNECTION_ACCEPTED),
    (lambda e: "repl" in e, EventKind.CONTACT_REPLIED),
]


def map_event_kind(raw: Optional[str]) -> EventKind:
    """Map a raw event string to an internal kind.

    Matching is case-insensitive. Anything no rule recognises, including a
    missing value, maps to ``EventKind.UNKNOWN``.
    """
    if not raw:
        return EventKind.UNKNOWN

    event = raw.strip().lower()
    for matches, kind in EVENT_KIND_RULES:
        if matches(event):
            return kind
    return EventKind.UNKNOWN
