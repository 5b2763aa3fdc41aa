"""Request-level authentication and organization authorization.

Every protected route depends on :func:`get_principal`; organization-scoped
routes additionally depend on :func:`get_membership` (or :func:`require_admin`),
which turns the caller's org_staff row into a :class:`Capability`.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .credentials import CredentialService
from .database import OrgStaff, get_membership as lookup_membership, get_user
from .errors import AuthError, Forbidden, PersistenceError, Unauthenticated

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID


@dataclass(frozen=True)
class Membership:
    principal: Principal
    organization_id: uuid.UUID
    staff_id: uuid.UUID
    title: str
    capability: Capability

    @property
    def is_admin(self) -> bool:
        return self.capability is Capability.ADMIN

    @classmethod
    def from_row(cls, principal: Principal, row: OrgStaff) -> "Membership":
        return cls(
            principal=principal,
            organization_id=row.organization_id,
            staff_id=row.id,
            title=row.title or "",
            capability=Capability.ADMIN if row.is_admin else Capability.MEMBER,
        )


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_credential_service(request: Request) -> CredentialService:
    return request.app.state.credentials


def extract_credential(header: Optional[str]) -> str:
    value = (header or "").strip()
    if value[:7].lower() == "bearer ":
        value = value[7:].strip()
    if not value:
        raise Unauthenticated("Missing credential")
    return value


def get_principal(
    authorization: Optional[str] = Header(None),
    credentials: CredentialService = Depends(get_credential_service),
    db: Session = Depends(get_db),
) -> Principal:
    token = extract_credential(authorization)
    try:
        claims = credentials.validate(token)
    except AuthError as exc:
        raise Unauthenticated(str(exc)) from None
    try:
        user = get_user(db, claims.principal_id)
    except SQLAlchemyError as exc:
        logger.exception("Principal lookup failed")
        raise PersistenceError("Principal lookup failed") from exc
    if user is None:
        logger.debug("Credential subject %s has no user record", claims.principal_id)
        raise Unauthenticated("Unknown principal")
    return Principal(id=user.id)


def resolve_membership(db: Session, organization_id: str, principal: Principal) -> Membership:
    try:
        org_uuid = uuid.UUID(str(organization_id))
    except ValueError:
        raise Forbidden("Not a member of this organization") from None
    try:
        row = lookup_membership(db, org_uuid, principal.id)
    except SQLAlchemyError as exc:
        logger.exception("Membership lookup failed for organization %s", org_uuid)
        raise PersistenceError("Membership lookup failed") from exc
    if row is None:
        raise Forbidden("Not a member of this organization")
    return Membership.from_row(principal, row)


def get_membership(
    org_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Membership:
    return resolve_membership(db, org_id, principal)


def require_admin(membership: Membership = Depends(get_membership)) -> Membership:
    if not membership.is_admin:
        raise Forbidden("Organization administrator access required")
    return membership
