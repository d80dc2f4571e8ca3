from .common import Disambiguate, Fold, Gap, Unambiguous
from .rules import ObservanceTable, Onsets, Recurrence
from .tzif import Tzif

__all__ = [
    "Tzif",
    "ObservanceTable",
    "Onsets",
    "Recurrence",
    "Disambiguate",
    "Unambiguous",
    "Gap",
    "Fold",
]
