from __future__ import annotations

import datetime
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select

from ..database import OrgStaff, Shift, ShiftAssignment, ensure_utc
from ..errors import ConflictError, ValidationError


def resolve_staff(session, organization_id: uuid.UUID, staff_ids: Iterable[uuid.UUID]) -> List[OrgStaff]:
    """Return the org_staff rows for ``staff_ids`` in request order, locked for the transaction.

    Rows are locked in id order so concurrent requests touching the same staff
    serialize instead of both passing the overlap check.
    """
    requested: List[uuid.UUID] = []
    for staff_id in staff_ids:
        if staff_id not in requested:
            requested.append(staff_id)
    if not requested:
        return []
    stmt = (
        select(OrgStaff)
        .where(OrgStaff.organization_id == organization_id, OrgStaff.id.in_(requested))
        .order_by(OrgStaff.id)
        .with_for_update()
    )
    found = {row.id: row for row in session.scalars(stmt)}
    for staff_id in requested:
        if staff_id not in found:
            raise ValidationError(
                f"Staff member {staff_id} is not a member of this organization",
                field="assigned_staff",
            )
    return [found[staff_id] for staff_id in requested]


def find_conflict(
    session,
    staff_id: uuid.UUID,
    start: datetime.datetime,
    end: datetime.datetime,
    *,
    exclude_shift_id: Optional[uuid.UUID] = None,
) -> Optional[Shift]:
    """Return an assigned shift of ``staff_id`` overlapping [start, end), if any."""
    stmt = (
        select(Shift)
        .join(ShiftAssignment, ShiftAssignment.shift_id == Shift.id)
        .where(
            ShiftAssignment.org_staff_id == staff_id,
            Shift.start < ensure_utc(end),
            Shift.end > ensure_utc(start),
        )
        .order_by(Shift.start)
    )
    if exclude_shift_id is not None:
        stmt = stmt.where(Shift.id != exclude_shift_id)
    return session.scalars(stmt).first()


def assign_staff(session, shift: Shift, staff: Iterable[OrgStaff]) -> List[ShiftAssignment]:
    assignments: List[ShiftAssignment] = []
    for member in staff:
        conflict = find_conflict(session, member.id, shift.start, shift.end, exclude_shift_id=shift.id)
        if conflict is not None:
            raise ConflictError(shift_id=conflict.id, staff_id=member.id)
        assignment = ShiftAssignment(shift_id=shift.id, org_staff_id=member.id)
        session.add(assignment)
        assignments.append(assignment)
    # Flush so later occurrences of the same series see these rows.
    session.flush()
    return assignments
