"""
Human review of a reconciliation result.

    NO_REPORT --load_draft--> DRAFT --finalize--> FINAL
        ^                       |                   |
        +----discard_draft------+                   |
        +------------------reset--------------------+

In DRAFT the reviewer may reject individual matches. In FINAL the reviewer
may select names and move them to another status in bulk, after a
confirmation step.
"""

import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from .models import AttendanceStatus, Attendee, ProcessingResult

logger = logging.getLogger(__name__)

UNKNOWN_PARTICIPANT = "Unknown participant"

# Receives the selected names and the target status; returns True to proceed
ConfirmGate = Callable[[List[str], AttendanceStatus], bool]


class ReportState(str, Enum):
    NO_REPORT = 'NO_REPORT'
    DRAFT = 'DRAFT'
    FINAL = 'FINAL'


class ReportReview:
    """Owns the draft and final reports of one attendance session"""

    def __init__(self):
        self.draft: Optional[ProcessingResult] = None
        self.report: Optional[ProcessingResult] = None
        self.selected: Set[str] = set()

    @property
    def state(self) -> ReportState:
        if self.report is not None:
            return ReportState.FINAL
        if self.draft is not None:
            return ReportState.DRAFT
        return ReportState.NO_REPORT

    def load_draft(self, result: ProcessingResult) -> None:
        """Start reviewing a fresh engine result"""
        if self.state != ReportState.NO_REPORT:
            raise ValueError(f"Cannot load a draft while in state {self.state.value}")
        self.draft = result.copy()
        self.draft.sort()

    def discard_draft(self) -> None:
        self.draft = None

    def reject(self, name: str) -> bool:
        """
        Mark a present match as wrong.

        The roster person becomes absent and the Zoom name it was matched
        with becomes an unexpected attendee. Returns False (no change) when
        there is no draft or the name is not in the present bucket.
        """
        if self.state != ReportState.DRAFT:
            return False
        match = self.draft.get(name)
        if match is None or match.status != AttendanceStatus.PRESENT:
            return False

        self.draft.remove(name)
        self.draft.add(Attendee(name, AttendanceStatus.ABSENT))
        observed = match.original_name or UNKNOWN_PARTICIPANT
        if not self.draft.add(Attendee(observed, AttendanceStatus.UNEXPECTED)):
            logger.warning(f"Rejected match {name!r}: {observed!r} is already in the report, not adding it again")
        self.draft.sort()
        logger.info(f"Rejected match {name!r} <- {observed!r}")
        return True

    def finalize(self) -> bool:
        """Promote the draft to the final report; no-op without a draft"""
        if self.state != ReportState.DRAFT:
            return False
        self.report = self.draft
        self.draft = None
        self.selected = set()
        logger.info(f"Report finalized: {self.report.counts()}")
        return True

    def toggle_selection(self, name: str) -> bool:
        """Flip one name's selection; returns whether it is now selected"""
        if self.state != ReportState.FINAL or name not in self.report:
            return False
        if name in self.selected:
            self.selected.discard(name)
            return False
        self.selected.add(name)
        return True

    def select(self, names: Iterable[str]) -> None:
        if self.state != ReportState.FINAL:
            return
        self.selected.update(n for n in names if n in self.report)

    def clear_selection(self) -> None:
        self.selected = set()

    def bulk_reclassify(self, target: AttendanceStatus, confirm: ConfirmGate) -> int:
        """
        Move every selected attendee to `target` once `confirm` agrees.

        Returns the number of attendees moved. A declined confirmation, a
        missing final report or an empty selection leave everything as it
        was and return 0. original_name values are kept unchanged.
        """
        if self.state != ReportState.FINAL or not self.selected:
            return 0
        names = sorted(self.selected)
        if not confirm(names, target):
            logger.info(f"Bulk change to {target.value} declined for {len(names)} names")
            return 0

        moved = 0
        for name in names:
            if name in self.report:
                self.report.set_status(name, target)
                moved += 1
        self.report.sort()
        self.selected = set()
        logger.info(f"Moved {moved} attendees to {target.value}")
        return moved

    def reset(self) -> None:
        self.draft = None
        self.report = None
        self.selected = set()

    def current(self) -> Optional[ProcessingResult]:
        return self.report if self.report is not None else self.draft

    def display(self, search: str = '', descending: bool = False) -> Optional[Dict[str, List[Attendee]]]:
        """Buckets of the current report filtered by name/Zoom name and sorted"""
        result = self.current()
        if result is None:
            return None
        shown = result.copy()
        shown.sort(descending=descending)
        term = (search or '').strip().lower()

        def keep(a: Attendee) -> bool:
            return not term or term in a.name.lower() or term in (a.original_name or '').lower()

        return {
            'present': [a for a in shown.present if keep(a)],
            'absent': [a for a in shown.absent if keep(a)],
            'unexpected': [a for a in shown.unexpected if keep(a)],
        }
