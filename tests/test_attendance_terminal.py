from unittest.mock import patch

import pytest

import attendance_terminal
from attendance_terminal import AttendanceTerminal
from conftest import ScriptedExtractor
from reconciler.fuzzy_matcher import FuzzyNameMatcher
from reconciler.models import AttendanceStatus
from reconciler.review import ReportState


@pytest.fixture
def inputs_dir(tmp_path, png):
    roster = tmp_path / "roster.csv"
    roster.write_text("Display Name\nSara Ali\nOmar Khan\n", encoding="utf-8")
    shot = tmp_path / "zoom.png"
    shot.write_bytes(png)
    return tmp_path


def scripted_input(answers):
    answers = iter(answers)
    return lambda prompt: next(answers)


def make_terminal(answers):
    extractor = ScriptedExtractor(default=["Sara A.", "Random Guest"])
    return AttendanceTerminal(extractor, FuzzyNameMatcher(), input_func=scripted_input(answers))


def test_review_reject_bulk_and_export(inputs_dir, capsys):
    terminal = make_terminal(["1", "9", "", "Omar Khan", "present", "y", ""])
    terminal.load_inputs(str(inputs_dir / "roster.csv"), None, [str(inputs_dir / "zoom.png")])
    assert terminal.analyze(terminal.session.sensitivity)

    terminal.review_draft()
    report = terminal.session.review.report
    assert terminal.session.review.state == ReportState.FINAL
    assert report.get("Sara Ali").status == AttendanceStatus.ABSENT
    assert report.get("Sara A.").status == AttendanceStatus.UNEXPECTED

    terminal.bulk_edit()
    assert report.get("Omar Khan").status == AttendanceStatus.PRESENT

    out = inputs_dir / "report.csv"
    terminal.export(str(out))
    assert out.read_bytes().startswith(b"\xef\xbb\xbf")
    assert "Invalid choice" in capsys.readouterr().out


def test_declined_bulk_move_changes_nothing(inputs_dir):
    terminal = make_terminal(["", "Omar Khan", "present", "n", ""])
    terminal.load_inputs(str(inputs_dir / "roster.csv"), None, [str(inputs_dir / "zoom.png")])
    terminal.analyze(terminal.session.sensitivity)
    terminal.review_draft()
    terminal.bulk_edit()
    assert terminal.session.review.report.get("Omar Khan").status == AttendanceStatus.ABSENT


def test_main_accepts_and_exports(inputs_dir):
    extractor = ScriptedExtractor(default=["Sara A."])
    out = inputs_dir / "report.xlsx"
    with patch.object(attendance_terminal, "build_capabilities", return_value=(extractor, FuzzyNameMatcher())):
        code = attendance_terminal.main([
            "--roster", str(inputs_dir / "roster.csv"),
            "--screenshots", str(inputs_dir / "zoom.png"),
            "--sensitivity", "flexible",
            "--yes",
            "--export", str(out),
        ])
    assert code == 0
    assert out.read_bytes()[:2] == b"PK"


def test_main_reports_missing_roster(inputs_dir):
    with patch.object(attendance_terminal, "build_capabilities",
                      return_value=(ScriptedExtractor(), FuzzyNameMatcher())):
        code = attendance_terminal.main([
            "--roster", str(inputs_dir / "missing.csv"),
            "--screenshots", str(inputs_dir / "zoom.png"),
        ])
    assert code == 1
