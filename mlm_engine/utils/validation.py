"""Input validation for triggering events."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from mlm_engine.models.enums import EventType
from mlm_engine.utils.datetime_utils import ensure_utc, period_of, utc_now
from mlm_engine.utils.exceptions import ValidationError


MAX_EVENT_ID_LENGTH = 128


@dataclass(frozen=True)
class CommissionEventInput:
    """Validated triggering event."""

    event_id: str
    source_member_id: int
    amount: Decimal
    event_type: EventType = EventType.TASK
    occurred_at: datetime | None = None

    @property
    def period(self) -> str:
        return period_of(self.occurred_at or utc_now())


def validate_amount(value: Any) -> Decimal:
    """
    Parse a positive finite decimal amount.

    Floats are accepted through their string form to avoid binary drift.

    Raises:
        ValidationError: If amount is missing, not a number or not positive
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Amount must be positive, got {value!r}")
    return amount


def validate_event(payload: CommissionEventInput | dict[str, Any]) -> CommissionEventInput:
    """
    Validate a triggering event.

    Args:
        payload: Event object or a dict with event_id, source_member_id,
            amount and optional event_type / occurred_at

    Returns:
        Validated event

    Raises:
        ValidationError: If the event is malformed
    """
    if isinstance(payload, CommissionEventInput):
        data = {
            "event_id": payload.event_id,
            "source_member_id": payload.source_member_id,
            "amount": payload.amount,
            "event_type": payload.event_type,
            "occurred_at": payload.occurred_at,
        }
    elif isinstance(payload, dict):
        data = payload
    else:
        raise ValidationError(f"Unsupported event payload: {type(payload).__name__}")

    event_id = data.get("event_id")
    if not isinstance(event_id, str) or not event_id.strip():
        raise ValidationError("event_id is required")
    event_id = event_id.strip()
    if len(event_id) > MAX_EVENT_ID_LENGTH or ":" in event_id:
        raise ValidationError(f"Invalid event_id {event_id!r}")

    source = data.get("source_member_id")
    if isinstance(source, bool) or not isinstance(source, int) or source <= 0:
        raise ValidationError(f"Invalid source_member_id: {source!r}")

    amount = validate_amount(data.get("amount"))

    raw_type = data.get("event_type") or EventType.TASK
    try:
        event_type = EventType(raw_type)
    except ValueError as e:
        raise ValidationError(f"Unknown event_type: {raw_type!r}") from e

    occurred_at = data.get("occurred_at")
    if occurred_at is not None:
        if not isinstance(occurred_at, datetime):
            raise ValidationError("occurred_at must be a datetime")
        occurred_at = ensure_utc(occurred_at)

    return CommissionEventInput(
        event_id=event_id,
        source_member_id=source,
        amount=amount,
        event_type=event_type,
        occurred_at=occurred_at,
    )
