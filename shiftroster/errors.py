"""Error taxonomy shared by the gate, the scheduling engine and the HTTP layer."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional


class ShiftRosterError(Exception):
    status_code = 500
    public_message: Optional[str] = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> Dict[str, Any]:
        return {"error": self.public_message or self.message}


class AuthError(ShiftRosterError):
    """Credential-level failure. The gate folds every subclass into Unauthenticated."""

    status_code = 401
    public_message = "Unauthorized"


class CredentialExpired(AuthError):
    pass


class CredentialMalformed(AuthError):
    pass


class Unauthenticated(ShiftRosterError):
    status_code = 401
    public_message = "Unauthorized"


class Forbidden(ShiftRosterError):
    status_code = 403
    public_message = "Forbidden"


class ValidationError(ShiftRosterError):
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    def payload(self) -> Dict[str, Any]:
        body = super().payload()
        if self.field:
            body["field"] = self.field
        return body


class ConflictError(ShiftRosterError):
    status_code = 409

    def __init__(self, shift_id: uuid.UUID, staff_id: uuid.UUID) -> None:
        super().__init__(f"Staff member {staff_id} is already assigned to overlapping shift {shift_id}")
        self.shift_id = shift_id
        self.staff_id = staff_id

    def payload(self) -> Dict[str, Any]:
        body = super().payload()
        body["shift_id"] = str(self.shift_id)
        body["staff_id"] = str(self.staff_id)
        return body


class PersistenceError(ShiftRosterError):
    status_code = 500
    public_message = "Internal server error"
