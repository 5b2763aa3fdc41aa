from __future__ import annotations

import datetime
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..database import Location, Shift, ensure_utc
from ..errors import ValidationError
from .recurrence import Occurrence


@dataclass
class ShiftTemplate:
    organization_id: uuid.UUID
    location_id: uuid.UUID
    start: datetime.datetime
    end: datetime.datetime
    rrule: Optional[str] = None
    notes: str = ""
    requested_staff_ids: List[uuid.UUID] = field(default_factory=list)
    extended_props: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreationResult:
    shift_ids: List[uuid.UUID]

    @property
    def count(self) -> int:
        return len(self.shift_ids)

    @property
    def message(self) -> str:
        return f"Successfully created {self.count} shifts"


def check_location(session, template: ShiftTemplate) -> Location:
    location = session.get(Location, template.location_id)
    if location is None or location.organization_id != template.organization_id:
        raise ValidationError(
            f"Location {template.location_id} does not belong to this organization",
            field="location_id",
        )
    return location


def materialize_shifts(session, template: ShiftTemplate, occurrences: Iterable[Occurrence]) -> List[Shift]:
    """Add one Shift per occurrence to the session and flush to assign ids."""
    props = json.dumps(template.extended_props or {})
    shifts: List[Shift] = []
    for occurrence in occurrences:
        shift = Shift(
            id=uuid.uuid4(),
            organization_id=template.organization_id,
            location_id=template.location_id,
            start=ensure_utc(occurrence.start),
            end=ensure_utc(occurrence.end),
            rrule=(template.rrule or "").strip(),
            notes=template.notes or "",
            extendedPropsJSON=props,
        )
        session.add(shift)
        shifts.append(shift)
    session.flush()
    return shifts
