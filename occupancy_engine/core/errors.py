# occupancy_engine/core/errors.py
from __future__ import annotations


class ValidationError(ValueError):
    """
    Raised when a rule, range or setpoint payload is malformed.

    Always raised before anything is written. `field` names the offending
    input so the HTTP layer can point the caller at it.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(LookupError):
    """
    Raised when a site, rule, zone or profile id does not exist.
    """

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} with id={identifier} not found.")
        self.kind = kind
        self.identifier = identifier
