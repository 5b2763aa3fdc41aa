from .api import create_shift_series
from .materializer import CreationResult, ShiftTemplate
from .recurrence import MAX_OCCURRENCES, Occurrence, expand_occurrences

__all__ = [
    "CreationResult",
    "MAX_OCCURRENCES",
    "Occurrence",
    "ShiftTemplate",
    "create_shift_series",
    "expand_occurrences",
]
