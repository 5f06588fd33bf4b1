"""
One user's attendance session: uploads, analysis run and report review.

Both front ends (Flask and terminal) drive the workflow through this
object: upload the official roster (spreadsheet XOR photo), upload Zoom
screenshots, run the analysis, review the draft, finalize, bulk-edit and
export.
"""

import io
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from .column_locator import extract_names_from_file
from .engine import NameExtractor, NameMatcher, ProgressCallback, process_attendance
from .errors import (
    AnalysisCancelledError,
    AnalysisInProgressError,
    AttendanceError,
    MissingInputError,
    NoNamesFoundError,
)
from .models import MatchSensitivity, ProcessingResult
from .review import ReportReview, ReportState

logger = logging.getLogger(__name__)


class AttendanceSession:
    """State for a single reviewer; not shared between users"""

    def __init__(self):
        self.official_file: Optional[Tuple[str, bytes]] = None
        self.official_file_name_count = 0
        self.official_image: Optional[bytes] = None
        self.screenshots: List[bytes] = []
        self.sensitivity = MatchSensitivity.BALANCED
        self.progress_log: List[str] = []
        self.error: Optional[str] = None
        self.loading = False
        self.review = ReportReview()
        self._lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None
        # Bumped by reset(); a run started under an older value is stale
        self._generation = 0

    @property
    def source_mode(self) -> Optional[str]:
        if self.official_file is not None:
            return 'excel'
        if self.official_image is not None:
            return 'image'
        return None

    def set_official_file(self, data: bytes, filename: str) -> int:
        """Store the roster spreadsheet and return how many names it holds"""
        names = extract_names_from_file(io.BytesIO(data), filename)
        self.official_file = (filename, data)
        self.official_file_name_count = len(names)
        self.official_image = None
        self.error = None
        return len(names)

    def set_official_image(self, data: bytes) -> None:
        self.official_image = data
        self.official_file = None
        self.official_file_name_count = 0
        self.error = None

    def add_screenshots(self, images: List[bytes]) -> int:
        self.screenshots.extend(images)
        self.error = None
        return len(self.screenshots)

    def clear_screenshots(self) -> None:
        self.screenshots = []

    def _official_names(self, official_file, official_image, extractor: NameExtractor,
                        log_progress: ProgressCallback) -> List[str]:
        if official_file is not None:
            filename, data = official_file
            log_progress("Reading the official spreadsheet...")
            return extract_names_from_file(io.BytesIO(data), filename)

        log_progress("Extracting names from the official roster image...")
        names = extractor.extract(official_image, True)
        log_progress(f"Extracted {len(names)} names from the image.")
        return names

    def run_analysis(self, extractor: NameExtractor, matcher: NameMatcher,
                     sensitivity: Optional[MatchSensitivity] = None,
                     workers: int = 1) -> ProcessingResult:
        """
        Run one analysis and load its result as the draft report.

        A reset() while the run is pending cancels it; the run then leaves
        the reset session untouched (no draft, error or progress lines).

        Raises:
            MissingInputError: no official source or no screenshots
            AnalysisInProgressError: another run is still pending
            AttendanceError: any pipeline failure; self.error holds the message
        """
        if self.source_mode is None or not self.screenshots:
            raise MissingInputError()
        if self.review.state != ReportState.NO_REPORT:
            raise AttendanceError("Discard or reset the current report before starting a new analysis.")

        with self._lock:
            if self.loading:
                raise AnalysisInProgressError()
            self.loading = True
            self._cancel_event = cancel_event = threading.Event()
            generation = self._generation

        if sensitivity is not None:
            self.sensitivity = sensitivity
        progress_log = self.progress_log = []
        self.error = None

        def log_progress(message: str) -> None:
            logger.info(message)
            progress_log.append(message)

        try:
            official = self._official_names(self.official_file, self.official_image, extractor, log_progress)
            if not official:
                raise NoNamesFoundError()
            result = process_attendance(
                official, list(self.screenshots), self.sensitivity, log_progress,
                extractor=extractor, matcher=matcher, workers=workers,
                cancel_event=cancel_event,
            )
            with self._lock:
                if self._generation != generation:
                    raise AnalysisCancelledError()
                self.review.load_draft(result)
            return self.review.draft
        except AttendanceError as e:
            if self._generation == generation:
                self.error = str(e)
            raise
        except Exception:
            logger.exception("Unexpected failure during attendance analysis")
            if self._generation == generation:
                self.error = AttendanceError.default_message
            raise
        finally:
            with self._lock:
                self.loading = False
                self._cancel_event = None

    def cancel(self) -> bool:
        """Ask a pending run to stop; returns False if nothing is running"""
        with self._lock:
            if self._cancel_event is None:
                return False
            self._cancel_event.set()
            return True

    def reset(self) -> None:
        """Forget uploads, progress and reports"""
        with self._lock:
            self._generation += 1
            if self._cancel_event is not None:
                self._cancel_event.set()
        self.official_file = None
        self.official_file_name_count = 0
        self.official_image = None
        self.screenshots = []
        self.sensitivity = MatchSensitivity.BALANCED
        self.progress_log = []
        self.error = None
        self.review.reset()

    def summary(self) -> Dict[str, Any]:
        result = self.review.current()
        return {
            'state': self.review.state.value,
            'source_mode': self.source_mode,
            'official_name_count': self.official_file_name_count,
            'screenshot_count': len(self.screenshots),
            'sensitivity': self.sensitivity.value,
            'loading': self.loading,
            'progress_log': list(self.progress_log),
            'error': self.error,
            'counts': result.counts() if result is not None else None,
        }
