import io
import json
import threading

import pytest

from conftest import ScriptedExtractor, ScriptedMatcher
from reconciler.errors import (
    AnalysisCancelledError,
    AnalysisInProgressError,
    AttendanceError,
    EmptyObservedSetError,
    MissingInputError,
    NoNamesFoundError,
    SourceReadError,
)
from reconciler.fuzzy_matcher import FuzzyNameMatcher
from reconciler.models import MatchSensitivity
from reconciler.review import ReportState
from reconciler.session import AttendanceSession

ROSTER_CSV = "Pharmacist Name,City\nSara Ali,Cairo\nOmar Khan,Giza\n".encode("utf-8")


@pytest.fixture
def session():
    attendance = AttendanceSession()
    attendance.set_official_file(ROSTER_CSV, "roster.csv")
    attendance.add_screenshots([b"shot"])
    return attendance


def test_official_sources_are_exclusive():
    attendance = AttendanceSession()
    assert attendance.source_mode is None
    assert attendance.set_official_file(ROSTER_CSV, "roster.csv") == 2
    assert attendance.source_mode == "excel"
    attendance.set_official_image(b"photo")
    assert attendance.source_mode == "image"
    assert attendance.official_file is None
    attendance.set_official_file(ROSTER_CSV, "roster.csv")
    assert attendance.official_image is None


def test_bad_roster_is_rejected_on_upload():
    attendance = AttendanceSession()
    with pytest.raises(SourceReadError):
        attendance.set_official_file(b"x", "roster.pdf")
    assert attendance.source_mode is None


def test_missing_inputs():
    attendance = AttendanceSession()
    with pytest.raises(MissingInputError):
        attendance.run_analysis(ScriptedExtractor(), FuzzyNameMatcher())


def test_spreadsheet_run_produces_draft(session):
    extractor = ScriptedExtractor(by_image={b"shot": ["Sara A.", "Random Guest"]})
    draft = session.run_analysis(extractor, FuzzyNameMatcher(), MatchSensitivity.BALANCED)

    assert session.review.state == ReportState.DRAFT
    assert draft.counts() == {"present": 1, "absent": 1, "unexpected": 1, "total": 3}
    assert session.progress_log == [
        "Reading the official spreadsheet...",
        "Extracting attendees from Zoom screenshot 1...",
        "Analyzing and matching names (sensitivity: BALANCED)...",
    ]
    assert session.loading is False
    assert session.error is None


def test_image_run_reads_roster_from_photo():
    attendance = AttendanceSession()
    attendance.set_official_image(b"photo")
    attendance.add_screenshots([b"shot"])
    extractor = ScriptedExtractor(official=["Sara Ali"], by_image={b"shot": ["Sara Ali"]})

    attendance.run_analysis(extractor, FuzzyNameMatcher())

    assert extractor.calls[0] == (b"photo", True)
    assert attendance.progress_log[:2] == [
        "Extracting names from the official roster image...",
        "Extracted 1 names from the image.",
    ]


def test_empty_roster_photo_fails():
    attendance = AttendanceSession()
    attendance.set_official_image(b"photo")
    attendance.add_screenshots([b"shot"])
    with pytest.raises(NoNamesFoundError):
        attendance.run_analysis(ScriptedExtractor(official=[]), FuzzyNameMatcher())
    assert attendance.error == NoNamesFoundError.default_message
    assert attendance.review.state == ReportState.NO_REPORT


def test_failure_records_error_and_clears_loading(session):
    with pytest.raises(EmptyObservedSetError):
        session.run_analysis(ScriptedExtractor(default=[]), FuzzyNameMatcher())
    assert session.error == EmptyObservedSetError.default_message
    assert session.loading is False


def test_second_run_needs_discard(session):
    extractor = ScriptedExtractor(default=["Sara Ali"])
    session.run_analysis(extractor, FuzzyNameMatcher())
    with pytest.raises(AttendanceError):
        session.run_analysis(extractor, FuzzyNameMatcher())
    session.review.discard_draft()
    session.run_analysis(extractor, FuzzyNameMatcher())
    assert session.review.state == ReportState.DRAFT


def test_concurrent_run_is_refused(session):
    started = threading.Event()
    release = threading.Event()

    class SlowExtractor(ScriptedExtractor):
        def extract(self, image, is_official_list=False):
            started.set()
            release.wait(5)
            return ["Sara Ali"]

    worker = threading.Thread(target=session.run_analysis, args=(SlowExtractor(), FuzzyNameMatcher()))
    worker.start()
    try:
        assert started.wait(5)
        with pytest.raises(AnalysisInProgressError):
            session.run_analysis(ScriptedExtractor(default=["X Y"]), FuzzyNameMatcher())
    finally:
        release.set()
        worker.join(5)
    assert session.review.state == ReportState.DRAFT


def test_cancel_stops_pending_run(session):
    session.add_screenshots([b"shot2"])
    matcher = ScriptedMatcher(json.dumps({"present": [], "absent": [], "unexpected": []}))

    class CancellingExtractor(ScriptedExtractor):
        def extract(self, image, is_official_list=False):
            session.cancel()
            return ["Guest"]

    with pytest.raises(AttendanceError):
        session.run_analysis(CancellingExtractor(), matcher)
    assert matcher.calls == []
    assert session.error == "The analysis was cancelled."
    assert session.cancel() is False


def test_reset_clears_everything(session):
    session.run_analysis(ScriptedExtractor(default=["Sara Ali"]), FuzzyNameMatcher())
    session.review.finalize()
    session.reset()
    summary = session.summary()
    assert summary["state"] == "NO_REPORT"
    assert summary["source_mode"] is None
    assert summary["screenshot_count"] == 0
    assert summary["progress_log"] == []
    assert summary["counts"] is None


def test_reset_during_run_leaves_fresh_session_clean(session):
    started = threading.Event()
    release = threading.Event()
    failures = []

    class SlowExtractor(ScriptedExtractor):
        def extract(self, image, is_official_list=False):
            started.set()
            release.wait(5)
            return ["Sara Ali"]

    def run():
        try:
            session.run_analysis(SlowExtractor(), FuzzyNameMatcher())
        except AttendanceError as e:
            failures.append(e)

    worker = threading.Thread(target=run)
    worker.start()
    assert started.wait(5)
    session.reset()
    release.set()
    worker.join(5)

    assert [type(e) for e in failures] == [AnalysisCancelledError]
    assert session.error is None
    assert session.progress_log == []
    assert session.loading is False
    assert session.review.state == ReportState.NO_REPORT
