from typing import Dict, List, Optional


class RelayError(Exception):
    """Base de los errores del relay."""


class MalformedPayloadError(RelayError):
    """The message body could not be decoded into a JSON object."""


class ValidationError(RelayError):
    """The payload decoded but one or more required fields are invalid.

    ``violations`` maps each offending field to the reason it was rejected.
    """

    def __init__(self, violations: Dict[str, str]):
        self.violations = dict(violations)
        super().__init__(
            "invalid notification request: "
            + ", ".join(f"{field} ({reason})" for field, reason in self.violations.items())
        )

    @property
    def fields(self) -> List[str]:
        return list(self.violations)


class BrokerSetupError(RelayError):
    """Connecting to the broker or declaring its topology failed at startup."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
