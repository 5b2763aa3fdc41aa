"""FastAPI surface for organization shift scheduling.

Every organization route passes through the gate dependencies; the roster view
is chosen from the caller's resolved capability, never from the request.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, configure_logging, load_settings
from .credentials import CredentialService
from .database import build_engine, build_session_factory, init_database
from .errors import PersistenceError, ShiftRosterError, ValidationError
from .gate import Membership, get_db, get_membership, require_admin
from .roster import get_admin_roster, get_member_roster
from .scheduling import ShiftTemplate, create_shift_series

logger = logging.getLogger(__name__)


def _parse_uuid(value: Any, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a UUID", field=field) from None


def _parse_timestamp(value: Any, field: str, *, required: bool = True) -> Optional[datetime.datetime]:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        parsed = isoparse(str(value))
    except (ValueError, OverflowError):
        raise ValidationError(f"{field} must be an ISO-8601 timestamp", field=field) from None
    if parsed.tzinfo is None:
        raise ValidationError(f"{field} must include a UTC offset", field=field)
    return parsed


def _parse_template(organization_id: uuid.UUID, payload: Dict[str, Any]) -> ShiftTemplate:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    staff_raw = payload.get("assigned_staff") or []
    if not isinstance(staff_raw, list):
        raise ValidationError("assigned_staff must be a list of staff ids", field="assigned_staff")
    extended_props = payload.get("extended_props") or {}
    if not isinstance(extended_props, dict):
        raise ValidationError("extended_props must be an object", field="extended_props")
    rrule = payload.get("rrule")
    if rrule is not None and not isinstance(rrule, str):
        raise ValidationError("rrule must be a string", field="rrule")
    return ShiftTemplate(
        organization_id=organization_id,
        location_id=_parse_uuid(payload.get("location_id"), "location_id"),
        start=_parse_timestamp(payload.get("start_time"), "start_time"),
        end=_parse_timestamp(payload.get("end_time"), "end_time"),
        rrule=rrule,
        notes=str(payload.get("notes") or ""),
        requested_staff_ids=[_parse_uuid(item, "assigned_staff") for item in staff_raw],
        extended_props=extended_props,
    )


async def _shiftroster_error_handler(_: Request, exc: ShiftRosterError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.payload()))


async def _request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = None
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body") or "body"
    error = ValidationError(f"Invalid request: {errors[0].get('msg') if errors else 'malformed body'}", field=field)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.payload()))


def create_app(settings: Optional[Settings] = None, *, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or load_settings()
    engine = engine or build_engine(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        configure_logging(settings.log_level)
        init_database(engine)
        yield
        engine.dispose()

    app = FastAPI(title="Shift Roster API", version="0.1", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.credentials = CredentialService(
        settings.jwt_secret,
        ttl=datetime.timedelta(days=settings.token_ttl_days),
    )
    app.add_exception_handler(ShiftRosterError, _shiftroster_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/organizations/{org_id}/me")
    def organization_me(membership: Membership = Depends(get_membership)) -> JSONResponse:
        return JSONResponse(
            content=jsonable_encoder(
                {
                    "organization_id": str(membership.organization_id),
                    "user_id": str(membership.principal.id),
                    "staff_id": str(membership.staff_id),
                    "title": membership.title,
                    "capability": membership.capability.value,
                    "is_admin": membership.is_admin,
                }
            )
        )

    @app.post("/organizations/{org_id}/shifts")
    def create_shifts(
        request: Request,
        payload: Dict[str, Any],
        membership: Membership = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> JSONResponse:
        template = _parse_template(membership.organization_id, payload)
        # The write transaction checks out its own connection; hand back the gate's first.
        db.close()
        result = create_shift_series(
            request.app.state.session_factory,
            template,
            actor=str(membership.principal.id),
            max_occurrences=request.app.state.settings.max_occurrences,
        )
        return JSONResponse(
            content=jsonable_encoder(
                {
                    "message": result.message,
                    "count": result.count,
                    "shift_ids": [str(shift_id) for shift_id in result.shift_ids],
                }
            )
        )

    @app.get("/organizations/{org_id}/shifts")
    def organization_shifts(
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        membership: Membership = Depends(require_admin),
        db: Session = Depends(get_db),
    ) -> JSONResponse:
        window_start = _parse_timestamp(start, "start", required=False)
        window_end = _parse_timestamp(end, "end", required=False)
        try:
            shifts = get_admin_roster(
                db,
                membership.organization_id,
                window_start=window_start,
                window_end=window_end,
            )
        except SQLAlchemyError as exc:
            logger.exception("Roster read failed for organization %s", membership.organization_id)
            raise PersistenceError("Roster read failed") from exc
        return JSONResponse(content=jsonable_encoder(shifts))

    @app.get("/organizations/{org_id}/my-shifts")
    def my_shifts(
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        membership: Membership = Depends(get_membership),
        db: Session = Depends(get_db),
    ) -> JSONResponse:
        window_start = _parse_timestamp(start, "start", required=False)
        window_end = _parse_timestamp(end, "end", required=False)
        try:
            shifts: List[Dict[str, Any]] = get_member_roster(
                db,
                membership.organization_id,
                membership.staff_id,
                window_start=window_start,
                window_end=window_end,
            )
        except SQLAlchemyError as exc:
            logger.exception("Shift read failed for staff %s", membership.staff_id)
            raise PersistenceError("Shift read failed") from exc
        return JSONResponse(content=jsonable_encoder(shifts))

    return app
