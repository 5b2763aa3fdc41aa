from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..database import record_audit_log
from ..errors import PersistenceError
from .assignments import assign_staff, resolve_staff
from .materializer import CreationResult, ShiftTemplate, check_location, materialize_shifts
from .recurrence import MAX_OCCURRENCES, expand_occurrences

logger = logging.getLogger(__name__)


def create_shift_series(
    session_factory: Callable,
    template: ShiftTemplate,
    actor: str,
    *,
    max_occurrences: int = MAX_OCCURRENCES,
) -> CreationResult:
    """Expand ``template`` and persist every shift and staff assignment atomically.

    A conflicting assignment on any occurrence, an unknown staff member or a
    storage failure rolls back the whole series.
    """
    occurrences = expand_occurrences(template.rrule, template.start, template.end, limit=max_occurrences)
    try:
        with session_factory() as session:
            with session.begin():
                check_location(session, template)
                staff = resolve_staff(session, template.organization_id, template.requested_staff_ids)
                shifts = materialize_shifts(session, template, occurrences)
                for shift in shifts:
                    assign_staff(session, shift, staff)
                if shifts:
                    record_audit_log(
                        session,
                        user_id=actor,
                        action="SHIFT_SERIES_CREATE",
                        target_type="Organization",
                        target_id=str(template.organization_id),
                        payload={
                            "shifts": len(shifts),
                            "rrule": template.rrule or "",
                            "staff": [str(member.id) for member in staff],
                        },
                    )
                shift_ids = [shift.id for shift in shifts]
    except SQLAlchemyError as exc:
        logger.exception("Shift series creation failed for organization %s", template.organization_id)
        raise PersistenceError("Shift series creation failed") from exc
    logger.info(
        "Created %d shifts for organization %s (actor %s)",
        len(shift_ids),
        template.organization_id,
        actor,
    )
    return CreationResult(shift_ids=shift_ids)
