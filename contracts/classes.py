"""Closed set of lesion class labels produced by segmentation."""

from __future__ import annotations

from enum import Enum
from typing import Dict


class LesionClass(str, Enum):
    PAPULE = "papule"
    PUSTULE = "pustule"
    NODULE = "nodule"
    COMEDONE_OPEN = "comedone_open"
    COMEDONE_CLOSED = "comedone_closed"
    PIH = "pih"  # post-inflammatory hyperpigmentation
    PIE = "pie"  # post-inflammatory erythema
    SCAR = "scar"
    MOLE = "mole"

    @property
    def is_inflamed(self) -> bool:
        return _INFLAMED[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "LesionClass | str") -> "LesionClass":
        if isinstance(value, LesionClass):
            return value
        return cls(str(value).lower())


_INFLAMED: Dict[LesionClass, bool] = {
    LesionClass.PAPULE: True,
    LesionClass.PUSTULE: True,
    LesionClass.NODULE: True,
    LesionClass.COMEDONE_OPEN: False,
    LesionClass.COMEDONE_CLOSED: False,
    LesionClass.PIH: False,
    LesionClass.PIE: True,
    LesionClass.SCAR: False,
    LesionClass.MOLE: False,
}

_DISPLAY_NAMES: Dict[LesionClass, str] = {
    LesionClass.PAPULE: "Papule",
    LesionClass.PUSTULE: "Pustule",
    LesionClass.NODULE: "Nodule/Cyst",
    LesionClass.COMEDONE_OPEN: "Open Comedone",
    LesionClass.COMEDONE_CLOSED: "Closed Comedone",
    LesionClass.PIH: "PIH",
    LesionClass.PIE: "PIE",
    LesionClass.SCAR: "Scar",
    LesionClass.MOLE: "Mole",
}

# Every member needs an entry in each table; a missing one fails at import.
for _table in (_INFLAMED, _DISPLAY_NAMES):
    _missing = set(LesionClass) - set(_table)
    if _missing:
        raise RuntimeError(f"Lesion class table incomplete: {sorted(m.value for m in _missing)}")
