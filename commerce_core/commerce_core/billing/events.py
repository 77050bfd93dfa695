"""Typed schemas for verified payment-provider webhook events.

Raw provider payloads are loosely-typed JSON.  ``parse_event`` turns a
verified payload into exactly one member of the closed ``WebhookEvent``
union, validating the correlation fields each kind requires:

* ``SubscriptionChange`` -- customer.subscription.created/updated/deleted
  on the platform channel.
* ``CheckoutCompleted`` -- checkout.session.completed on the connect channel.
* ``AccountUpdated`` -- account.updated on the connect channel.
* ``UnhandledEvent`` -- anything else; acknowledged and dropped.

A recognised kind with a missing or invalid required field raises
``MalformedEventError`` instead of degrading to partial data.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError

from commerce_core.billing.statuses import ProviderSubscriptionStatus


class WebhookChannel(str, Enum):
    """Inbound webhook endpoint, each signed with its own secret."""

    PLATFORM = "platform"
    CONNECT = "connect"


class EventKind(str, Enum):
    """Provider event types the platform acts on."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    CHECKOUT_COMPLETED = "checkout.session.completed"
    ACCOUNT_UPDATED = "account.updated"


CHANNEL_EVENT_KINDS: dict[WebhookChannel, frozenset[EventKind]] = {
    WebhookChannel.PLATFORM: frozenset(
        {
            EventKind.SUBSCRIPTION_CREATED,
            EventKind.SUBSCRIPTION_UPDATED,
            EventKind.SUBSCRIPTION_DELETED,
        }
    ),
    WebhookChannel.CONNECT: frozenset(
        {
            EventKind.CHECKOUT_COMPLETED,
            EventKind.ACCOUNT_UPDATED,
        }
    ),
}

# Ledger vocabulary recorded in subscription_history.event_type.
_LEDGER_EVENT_TYPES: dict[EventKind, str] = {
    EventKind.SUBSCRIPTION_CREATED: "subscription.created",
    EventKind.SUBSCRIPTION_UPDATED: "subscription.updated",
    EventKind.SUBSCRIPTION_DELETED: "subscription.deleted",
}


class MalformedEventError(ValueError):
    """A recognised event kind is missing a required correlation field."""

    def __init__(self, event_id: str | None, event_type: str | None, reason: str) -> None:
        self.event_id = event_id
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Malformed {event_type or 'event'} {event_id or '<no id>'}: {reason}")


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


class SubscriptionChange(BaseModel):
    """A platform subscription was created, updated, or deleted."""

    kind: Literal[
        EventKind.SUBSCRIPTION_CREATED,
        EventKind.SUBSCRIPTION_UPDATED,
        EventKind.SUBSCRIPTION_DELETED,
    ]
    event_id: str = Field(..., min_length=1)
    subscription_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1, description="Correlation key from subscription metadata.")
    provider_status: ProviderSubscriptionStatus
    price_id: str | None = Field(default=None)
    customer_id: str | None = Field(default=None)
    trial_end: datetime | None = Field(default=None)
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw event as delivered.")

    @property
    def ledger_event_type(self) -> str:
        return _LEDGER_EVENT_TYPES[self.kind]

    @property
    def is_deletion(self) -> bool:
        return self.kind == EventKind.SUBSCRIPTION_DELETED


class CheckoutCompleted(BaseModel):
    """A buyer completed a hosted course checkout on a connected account."""

    kind: Literal[EventKind.CHECKOUT_COMPLETED] = EventKind.CHECKOUT_COMPLETED
    event_id: str = Field(..., min_length=1)
    checkout_session_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    course_ids: list[str] = Field(default_factory=list)
    payment_intent_id: str | None = Field(default=None)


class AccountUpdated(BaseModel):
    """Capability snapshot of a tenant's connected account."""

    kind: Literal[EventKind.ACCOUNT_UPDATED] = EventKind.ACCOUNT_UPDATED
    event_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    charges_enabled: bool = Field(default=False)
    payouts_enabled: bool = Field(default=False)
    disabled_reason: str | None = Field(default=None)


class UnhandledEvent(BaseModel):
    """Any event kind outside the recognised set for its channel."""

    kind: Literal["unhandled"] = "unhandled"
    event_id: str
    event_type: str


WebhookEvent = Union[SubscriptionChange, CheckoutCompleted, AccountUpdated, UnhandledEvent]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _object_of(raw: dict[str, Any]) -> dict[str, Any]:
    data = raw.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise KeyError("data.object")
    return data["object"]


def _metadata_of(obj: dict[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _first_price_id(obj: dict[str, Any]) -> str | None:
    items = obj.get("items")
    if not isinstance(items, dict):
        return None
    data = items.get("data") or []
    if not data or not isinstance(data[0], dict):
        return None
    price = data[0].get("price")
    if isinstance(price, dict):
        return price.get("id")
    return None


def _parse_course_ids(value: Any) -> list[str]:
    """Decode an optional JSON-encoded course id list from session metadata."""
    if value is None:
        return []
    if isinstance(value, list):
        decoded = value
    elif isinstance(value, str):
        decoded = json.loads(value)
    else:
        raise ValueError("course_ids metadata must be a list of ids")
    if not isinstance(decoded, list) or not all(isinstance(c, str) and c for c in decoded):
        raise ValueError("course_ids metadata must be a list of ids")
    return decoded


def _build_subscription_change(kind: EventKind, event_id: str, raw: dict[str, Any]) -> SubscriptionChange:
    obj = _object_of(raw)
    metadata = _metadata_of(obj)
    customer = obj.get("customer")
    return SubscriptionChange(
        kind=kind,
        event_id=event_id,
        subscription_id=obj.get("id"),
        tenant_id=metadata.get("tenant_id"),
        provider_status=obj.get("status"),
        price_id=_first_price_id(obj),
        customer_id=customer if isinstance(customer, str) else None,
        trial_end=obj.get("trial_end"),
        payload=raw,
    )


def _build_checkout_completed(event_id: str, raw: dict[str, Any]) -> CheckoutCompleted:
    obj = _object_of(raw)
    metadata = _metadata_of(obj)
    intent = obj.get("payment_intent")
    if isinstance(intent, dict):
        intent = intent.get("id")
    return CheckoutCompleted(
        event_id=event_id,
        checkout_session_id=obj.get("id"),
        payment_id=metadata.get("payment_id"),
        tenant_id=metadata.get("tenant_id"),
        user_id=metadata.get("user_id"),
        course_ids=_parse_course_ids(metadata.get("course_ids")),
        payment_intent_id=intent,
    )


def _build_account_updated(event_id: str, raw: dict[str, Any]) -> AccountUpdated:
    obj = _object_of(raw)
    requirements = obj.get("requirements")
    disabled_reason = requirements.get("disabled_reason") if isinstance(requirements, dict) else None
    return AccountUpdated(
        event_id=event_id,
        account_id=obj.get("id"),
        charges_enabled=bool(obj.get("charges_enabled")),
        payouts_enabled=bool(obj.get("payouts_enabled")),
        disabled_reason=disabled_reason,
    )


def parse_event(raw: dict[str, Any], channel: WebhookChannel) -> WebhookEvent:
    """Classify a verified provider event into the ``WebhookEvent`` union.

    Parameters
    ----------
    raw:
        Event JSON decoded from the verified request body.
    channel:
        Endpoint the event arrived on.  Kinds not handled on that channel
        become ``UnhandledEvent``.

    Raises
    ------
    MalformedEventError
        If the envelope lacks an id/type, or a recognised kind lacks a
        required field or carries an unknown subscription status.
    """
    event_id = raw.get("id")
    event_type = raw.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise MalformedEventError(None, event_type if isinstance(event_type, str) else None, "missing event id")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError(event_id, None, "missing event type")

    try:
        kind = EventKind(event_type)
    except ValueError:
        return UnhandledEvent(event_id=event_id, event_type=event_type)
    if kind not in CHANNEL_EVENT_KINDS[channel]:
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    try:
        if kind == EventKind.CHECKOUT_COMPLETED:
            return _build_checkout_completed(event_id, raw)
        if kind == EventKind.ACCOUNT_UPDATED:
            return _build_account_updated(event_id, raw)
        return _build_subscription_change(kind, event_id, raw)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise MalformedEventError(event_id, event_type, f"invalid fields: {fields}") from exc
    except (KeyError, ValueError) as exc:
        raise MalformedEventError(event_id, event_type, str(exc)) from exc
