"""
Data model for attendance reconciliation.

A report keeps every attendee in one name-keyed, insertion-ordered
collection. The status stored on each Attendee is the only record of
which bucket the person belongs to; the present / absent / unexpected
lists are derived from it on demand.
"""

import unicodedata
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional


class AttendanceStatus(str, Enum):
    PRESENT = 'PRESENT'
    ABSENT = 'ABSENT'
    UNEXPECTED = 'UNEXPECTED'


class MatchSensitivity(str, Enum):
    STRICT = 'STRICT'
    BALANCED = 'BALANCED'
    FLEXIBLE = 'FLEXIBLE'

    @classmethod
    def parse(cls, value, default: Optional['MatchSensitivity'] = None) -> 'MatchSensitivity':
        """Accept an enum member or a case-insensitive name like 'balanced'"""
        if isinstance(value, cls):
            return value
        if value is None or str(value).strip() == '':
            if default is None:
                raise ValueError("Sensitivity is required")
            return default
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown sensitivity: {value}. Use one of: {', '.join(m.value for m in cls)}")


@dataclass(frozen=True)
class Attendee:
    name: str
    status: AttendanceStatus
    original_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'name': self.name,
            'status': self.status.value,
            'originalName': self.original_name,
        }


def collation_key(name: str) -> str:
    """Sort key that groups accented/unaccented forms and ignores case"""
    return unicodedata.normalize('NFKD', name).casefold()


class ProcessingResult:
    """Attendance report: each name lives in exactly one bucket"""

    def __init__(self, attendees: Iterable[Attendee] = ()):
        self._attendees: Dict[str, Attendee] = {}
        for attendee in attendees:
            self.add(attendee)

    def add(self, attendee: Attendee) -> bool:
        """Insert an attendee. Returns False (and changes nothing) if the name is taken."""
        if attendee.name in self._attendees:
            return False
        self._attendees[attendee.name] = attendee
        return True

    def remove(self, name: str) -> Optional[Attendee]:
        return self._attendees.pop(name, None)

    def get(self, name: str) -> Optional[Attendee]:
        return self._attendees.get(name)

    def set_status(self, name: str, status: AttendanceStatus) -> None:
        # original_name is kept as-is, even when it no longer describes a match
        self._attendees[name] = replace(self._attendees[name], status=status)

    def __contains__(self, name) -> bool:
        return name in self._attendees

    def __len__(self) -> int:
        return len(self._attendees)

    def __iter__(self):
        return iter(list(self._attendees.values()))

    def bucket(self, status: AttendanceStatus) -> List[Attendee]:
        return [a for a in self._attendees.values() if a.status == status]

    @property
    def present(self) -> List[Attendee]:
        return self.bucket(AttendanceStatus.PRESENT)

    @property
    def absent(self) -> List[Attendee]:
        return self.bucket(AttendanceStatus.ABSENT)

    @property
    def unexpected(self) -> List[Attendee]:
        return self.bucket(AttendanceStatus.UNEXPECTED)

    def sort(self, descending: bool = False) -> None:
        """Reorder the stored attendees by name collation"""
        ordered = sorted(self._attendees.values(), key=lambda a: collation_key(a.name), reverse=descending)
        self._attendees = {a.name: a for a in ordered}

    def copy(self) -> 'ProcessingResult':
        return ProcessingResult(self._attendees.values())

    def counts(self) -> Dict[str, int]:
        return {
            'present': len(self.present),
            'absent': len(self.absent),
            'unexpected': len(self.unexpected),
            'total': len(self),
        }

    def attendance_rate(self) -> float:
        """Share of roster members who attended (unexpected attendees excluded)"""
        counts = self.counts()
        roster_size = counts['present'] + counts['absent']
        if roster_size == 0:
            return 0.0
        return counts['present'] / roster_size

    def to_dict(self) -> Dict[str, List[Dict[str, Optional[str]]]]:
        return {
            'present': [a.to_dict() for a in self.present],
            'absent': [a.to_dict() for a in self.absent],
            'unexpected': [a.to_dict() for a in self.unexpected],
        }
