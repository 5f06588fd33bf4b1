"""
Attendance reconciliation package

This package contains:
- column_locator.py: finds the name column in a roster spreadsheet
- gemini_service.py: Gemini name extraction from images and Gemini name matching
- fuzzy_matcher.py: offline name matcher with the same contract
- engine.py: merges screenshot names and reconciles them with the roster
- review.py: draft review, finalization and bulk status changes
- session.py: per-user workflow state shared by the Flask app and the terminal
- export.py: Excel / CSV report export
"""

from .errors import (
    AnalysisCancelledError,
    AnalysisInProgressError,
    AttendanceError,
    CapabilityUnavailableError,
    EmptyObservedSetError,
    ExtractionFailure,
    MatchParseError,
    MissingInputError,
    NoNamesFoundError,
    SourceReadError,
)
from .models import AttendanceStatus, Attendee, MatchSensitivity, ProcessingResult
from .engine import NameExtractor, NameMatcher, process_attendance
from .review import ReportReview, ReportState
from .session import AttendanceSession

__all__ = [
    'AnalysisCancelledError', 'AnalysisInProgressError', 'AttendanceError', 'CapabilityUnavailableError',
    'EmptyObservedSetError', 'ExtractionFailure', 'MatchParseError', 'MissingInputError',
    'NoNamesFoundError', 'SourceReadError',
    'AttendanceStatus', 'Attendee', 'MatchSensitivity', 'ProcessingResult',
    'NameExtractor', 'NameMatcher', 'process_attendance',
    'ReportReview', 'ReportState', 'AttendanceSession',
]
