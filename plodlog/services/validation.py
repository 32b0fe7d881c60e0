"""Input validation shared by the flows and the HTTP layer."""
from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from ..domain import PIN_LENGTH, SENTINEL_PIN, OperationalRole, ShiftType


class ValidationError(ValueError):
    """Raised when user input is malformed. Nothing reaches the store."""


def require_text(value: Any, field: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required.")
    return text


def validate_pin(pin: Any) -> str:
    text = str(pin or "").strip()
    if len(text) != PIN_LENGTH or not text.isdigit():
        raise ValidationError(f"PIN must be {PIN_LENGTH} digits")
    return text


def validate_new_pin(new_pin: Any, confirm_pin: Any) -> str:
    pin = validate_pin(new_pin)
    if str(confirm_pin or "").strip() != pin:
        raise ValidationError("PINs do not match")
    if pin == SENTINEL_PIN:
        raise ValidationError("Choose a PIN other than the temporary one.")
    return pin


def validate_signature(signature: Any) -> str:
    text = str(signature or "").strip()
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    if not text:
        raise ValidationError("Signature is empty.")
    try:
        base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Signature must be base64 encoded.") from exc
    return text


def parse_role(value: Any) -> OperationalRole:
    return OperationalRole.from_name(str(value) if value is not None else None)


def parse_shift(value: Any) -> ShiftType:
    if value in (None, ""):
        return ShiftType.DAY
    return ShiftType.from_name(str(value))


def parse_id_list(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list of ids.")
    result: List[str] = []
    for item in value:
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    return result


def parse_instant(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ValidationError(f"{field} must be an ISO date and time.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_instant(value: Any, field: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return parse_instant(value, field)


def ensure_known(ids: Iterable[str], known: Iterable[str], field: str) -> None:
    missing = sorted(set(ids) - set(known))
    if missing:
        raise ValidationError(f"Unknown {field}: {', '.join(missing)}")
