"""
Agendo Backend — Subscription Status Rules
Remote status mapping and the local transition table.
"""
from typing import Optional

from app.models.subscription import SubscriptionStatus

_REMOTE_STATUS_MAP = {
    "authorized": SubscriptionStatus.ACTIVE,
    "active": SubscriptionStatus.ACTIVE,
    "paused": SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE,
    "cancelled": SubscriptionStatus.CANCELED,
    "canceled": SubscriptionStatus.CANCELED,
    "expired": SubscriptionStatus.CANCELED,
}

ALLOWED_TRANSITIONS = {
    SubscriptionStatus.PENDING: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE: {
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.CANCELED: set(),
}


def map_remote_status(remote_status) -> Optional[SubscriptionStatus]:
    """
    Translate a provider status into the local status.
    Returns None for anything unrecognized; callers keep the current status.
    """
    if remote_status is None:
        return None
    return _REMOTE_STATUS_MAP.get(str(remote_status).strip().lower())


def can_transition(current: str, target: str) -> bool:
    """True if moving from `current` to `target` is a legal lifecycle step."""
    try:
        source = SubscriptionStatus(current)
        destination = SubscriptionStatus(target)
    except ValueError:
        return False
    return destination in ALLOWED_TRANSITIONS[source]


def is_terminal(status: str) -> bool:
    return status == SubscriptionStatus.CANCELED.value
