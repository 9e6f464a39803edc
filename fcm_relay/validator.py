import json
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from fcm_relay.errors import MalformedPayloadError, ValidationError
from fcm_relay.models import NotificationRequest

_REASONS = {
    "missing": "missing",
    "string_type": "not a string",
    "string_too_short": "empty",
}


def decode(body: bytes) -> Dict[str, Any]:
    # ValueError cubre JSONDecodeError y enteros de más de 4300 dígitos;
    # RecursionError, arrays anidados a gran profundidad
    try:
        raw = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedPayloadError(f"body is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"expected a JSON object, got {type(raw).__name__}")
    return raw


def validate(raw: Any) -> NotificationRequest:
    """Check ``raw`` against the notification request shape.

    Only presence, string type and non-emptiness of the four fields are
    checked. Values are passed through untouched and unknown keys are ignored.
    """
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"expected a JSON object, got {type(raw).__name__}")
    try:
        return NotificationRequest.model_validate(raw)
    except PydanticValidationError as e:
        violations: Dict[str, str] = {}
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "__root__"
            violations.setdefault(field, _REASONS.get(err["type"], err["msg"]))
        raise ValidationError(violations) from e


def parse(body: bytes) -> NotificationRequest:
    return validate(decode(body))
