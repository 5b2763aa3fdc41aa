"""Roster reads: the admin view with full assignment lists and the self view."""

from __future__ import annotations

import datetime
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .database import OrgStaff, Shift, ShiftAssignment, ensure_utc

ASSIGNED_COLOR = "#1c4641"
UNASSIGNED_COLOR = "#4a1f43"


def _apply_window(stmt, window_start: Optional[datetime.datetime], window_end: Optional[datetime.datetime]):
    if window_start is not None:
        stmt = stmt.where(Shift.end > ensure_utc(window_start))
    if window_end is not None:
        stmt = stmt.where(Shift.start < ensure_utc(window_end))
    return stmt


def _shift_to_dict(shift: Shift) -> Dict[str, Any]:
    location = shift.location
    return {
        "id": str(shift.id),
        "start": ensure_utc(shift.start).isoformat(),
        "end": ensure_utc(shift.end).isoformat(),
        "title": location.name if location else "",
        "location_id": str(shift.location_id),
        "address": location.address if location else "",
        "notes": shift.notes,
        "rrule": shift.rrule,
        "extended_props": shift.extended_props_dict(),
    }


def _assignee_to_dict(member: OrgStaff) -> Dict[str, Any]:
    user = member.user
    return {
        "staff_id": str(member.id),
        "user_id": str(member.user_id),
        "name": user.full_name if user else "",
        "first_name": user.first_name if user else "",
        "last_name": user.last_name if user else "",
        "title": member.title,
    }


def get_admin_roster(
    session,
    organization_id: uuid.UUID,
    *,
    window_start: Optional[datetime.datetime] = None,
    window_end: Optional[datetime.datetime] = None,
) -> List[Dict[str, Any]]:
    stmt = (
        select(Shift)
        .options(
            selectinload(Shift.location),
            selectinload(Shift.assignments).selectinload(ShiftAssignment.staff).selectinload(OrgStaff.user),
        )
        .where(Shift.organization_id == organization_id)
        .order_by(Shift.start, Shift.end)
    )
    stmt = _apply_window(stmt, window_start, window_end)
    payload = []
    for shift in session.scalars(stmt):
        item = _shift_to_dict(shift)
        assigned = [_assignee_to_dict(a.staff) for a in shift.assignments if a.staff is not None]
        assigned.sort(key=lambda entry: (entry["last_name"], entry["first_name"], entry["staff_id"]))
        item["assigned"] = assigned
        item["status"] = "assigned" if assigned else "unassigned"
        item["color"] = ASSIGNED_COLOR if assigned else UNASSIGNED_COLOR
        payload.append(item)
    return payload


def get_member_roster(
    session,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    *,
    window_start: Optional[datetime.datetime] = None,
    window_end: Optional[datetime.datetime] = None,
) -> List[Dict[str, Any]]:
    stmt = (
        select(Shift)
        .options(selectinload(Shift.location))
        .join(ShiftAssignment, ShiftAssignment.shift_id == Shift.id)
        .where(
            Shift.organization_id == organization_id,
            ShiftAssignment.org_staff_id == staff_id,
        )
        .order_by(Shift.start, Shift.end)
    )
    stmt = _apply_window(stmt, window_start, window_end)
    return [_shift_to_dict(shift) for shift in session.scalars(stmt)]
