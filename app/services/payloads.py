"""
Agendo Backend — Provider Payload Lookups
Mercado Pago field names drift between products and API versions, so every
logical value is read through an ordered list of candidate paths. The first
non-empty match wins.
"""
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from app.core.config import SANDBOX_MODE

SANDBOX_URL_FIELDS = ("sandbox_init_point", "sandbox_url", "test_url")
PRODUCTION_URL_FIELDS = ("init_point", "url", "checkout_url")

# Subscription id inside a created preapproval
REMOTE_ID_FIELDS = ("id", "preapproval_id", "subscription_id")

# Resource id inside a webhook notification. `data.id` is the resource; the
# top-level `id` is only a fallback because some topics use it for the
# notification itself.
NOTIFICATION_ID_FIELDS = ("data.id", "preapproval_id", "subscription_id", "id")
NOTIFICATION_TOPIC_FIELDS = ("topic", "type")

PERIOD_START_FIELDS = (
    "current_period_start_date",
    "auto_recurring.start_date",
    "date_created",
)
PERIOD_END_FIELDS = (
    "current_period_end_date",
    "next_payment_date",
    "auto_recurring.end_date",
)


def _lookup(payload: Mapping, path: str) -> Any:
    # A literal dotted key (query string "data.id") wins over nesting
    if path in payload:
        return payload[path]
    value: Any = payload
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def first_value(payload: Optional[Mapping], paths: Sequence[str]) -> Optional[str]:
    """Return the first non-empty value among `paths`, as a string."""
    if not isinstance(payload, Mapping):
        return None
    for path in paths:
        value = _lookup(payload, path)
        if value is None or isinstance(value, (Mapping, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def select_checkout_url(response: Optional[Mapping], mode: str) -> Optional[str]:
    """
    Pick the redirect URL for the payer.
    Sandbox prefers the sandbox URL and falls back to production; production
    does the inverse. Never invents a URL.
    """
    sandbox_url = first_value(response, SANDBOX_URL_FIELDS)
    production_url = first_value(response, PRODUCTION_URL_FIELDS)
    if mode == SANDBOX_MODE:
        return sandbox_url or production_url
    return production_url or sandbox_url


def extract_remote_id(response: Optional[Mapping]) -> Optional[str]:
    return first_value(response, REMOTE_ID_FIELDS)


def extract_notification(body: Optional[Mapping], query: Optional[Mapping] = None):
    """
    Return `(topic, resource_id)` from a webhook call. The body is checked
    before the query string.
    """
    sources = [source for source in (body, query) if isinstance(source, Mapping)]
    topic = next(
        (t for t in (first_value(s, NOTIFICATION_TOPIC_FIELDS) for s in sources) if t),
        None,
    )
    resource_id = next(
        (i for i in (first_value(s, NOTIFICATION_ID_FIELDS) for s in sources) if i),
        None,
    )
    return (topic.lower() if topic else None), resource_id


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_period(remote: Optional[Mapping]):
    """Return `(starts_at, expires_at)` from a remote subscription record."""
    if not isinstance(remote, Mapping):
        return None, None
    starts_at = next(
        (d for d in (parse_datetime(_lookup(remote, f)) for f in PERIOD_START_FIELDS) if d),
        None,
    )
    expires_at = next(
        (d for d in (parse_datetime(_lookup(remote, f)) for f in PERIOD_END_FIELDS) if d),
        None,
    )
    return starts_at, expires_at
