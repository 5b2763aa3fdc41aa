"""Bearer credential issuing and validation.

Credentials are stateless HS256 JWTs carrying the principal id (``sub``) and an
expiry (``exp``). Nothing is persisted; validity depends only on the signing
secret and the current time.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import jwt

from .errors import CredentialExpired, CredentialMalformed

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc
DEFAULT_TTL = datetime.timedelta(days=30)


@dataclass(frozen=True)
class Claims:
    principal_id: uuid.UUID
    expires_at: datetime.datetime


class CredentialService:
    def __init__(
        self,
        secret: str,
        *,
        ttl: datetime.timedelta = DEFAULT_TTL,
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required.")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock or (lambda: datetime.datetime.now(UTC))

    def _now(self, now: Optional[datetime.datetime]) -> datetime.datetime:
        value = now or self._clock()
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value

    def issue(self, principal_id: uuid.UUID, *, now: Optional[datetime.datetime] = None) -> str:
        expires_at = self._now(now) + self._ttl
        payload = {"sub": str(principal_id), "exp": int(expires_at.timestamp())}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str, *, now: Optional[datetime.datetime] = None) -> Claims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"], "verify_exp": False},
            )
        except jwt.InvalidTokenError as exc:
            logger.debug("Credential rejected: %s", type(exc).__name__)
            raise CredentialMalformed("Credential could not be verified") from None
        try:
            principal_id = uuid.UUID(str(payload["sub"]))
            expires_at = datetime.datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
        except (TypeError, ValueError, OverflowError):
            logger.debug("Credential rejected: unreadable claims")
            raise CredentialMalformed("Credential claims are invalid") from None
        if self._now(now) >= expires_at:
            logger.debug("Credential rejected: expired at %s", expires_at.isoformat())
            raise CredentialExpired("Credential has expired")
        return Claims(principal_id=principal_id, expires_at=expires_at)
