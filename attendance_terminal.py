"""
Terminal-Based Attendance Reconciliation

Runs the same workflow as the web app from the command line: read the
official roster (spreadsheet or photo), read the Zoom screenshots, match the
names, let the reviewer reject wrong matches, finalize, optionally move
names in bulk, and export the report.
"""

import argparse
import sys
from pathlib import Path
from typing import Callable, List, Optional

from reconciler import AttendanceError, AttendanceSession, AttendanceStatus, MatchSensitivity
from reconciler.config import load_settings, setup_logging
from reconciler.export import STATUS_LABELS, to_csv_bytes, to_xlsx_bytes
from reconciler.fuzzy_matcher import FuzzyNameMatcher


class AttendanceTerminal:
    """Interactive terminal front end over an AttendanceSession"""

    def __init__(self, extractor, matcher, input_func: Callable[[str], str] = input, workers: int = 1):
        self.session = AttendanceSession()
        self.extractor = extractor
        self.matcher = matcher
        self.input = input_func
        self.workers = workers

    def print_header(self, title: str):
        """Print a formatted header"""
        print("\n" + "=" * 60)
        print(f"  {title}")
        print("=" * 60 + "\n")

    def ask_yes_no(self, question: str) -> bool:
        answer = self.input(f"{question} (y/n): ").strip().lower()
        return answer in ('y', 'yes')

    def load_inputs(self, roster: Optional[str], roster_image: Optional[str], screenshots: List[str]):
        if roster:
            count = self.session.set_official_file(Path(roster).read_bytes(), Path(roster).name)
            print(f"Roster loaded: {count} names found in {roster}")
        elif roster_image:
            self.session.set_official_image(Path(roster_image).read_bytes())
            print(f"Official roster image loaded: {roster_image}")
        self.session.add_screenshots([Path(p).read_bytes() for p in screenshots])
        print(f"{len(screenshots)} Zoom screenshot(s) loaded")

    def analyze(self, sensitivity: MatchSensitivity) -> bool:
        self.print_header(f"Analyzing attendance (sensitivity: {sensitivity.value})")
        try:
            self.session.run_analysis(self.extractor, self.matcher, sensitivity, workers=self.workers)
        except AttendanceError as e:
            for line in self.session.progress_log:
                print(f"  {line}")
            print(f"\nError: {e}")
            return False
        for line in self.session.progress_log:
            print(f"  {line}")
        return True

    def show_report(self, title: str):
        self.print_header(title)
        buckets = self.session.review.display()
        present = buckets['present']
        print(f"Present ({len(present)}):")
        for i, attendee in enumerate(present, 1):
            print(f"  {i:3d}. {attendee.name}  <-  {attendee.original_name or ''}")
        print(f"\nAbsent ({len(buckets['absent'])}):")
        for attendee in buckets['absent']:
            print(f"       {attendee.name}")
        print(f"\nNot on roster ({len(buckets['unexpected'])}):")
        for attendee in buckets['unexpected']:
            print(f"       {attendee.name}")

    def review_draft(self):
        """Let the user reject matches by number until they finalize"""
        while True:
            self.show_report("Review matches")
            choice = self.input("\nNumber of a wrong match to reject (Enter to finalize): ").strip()
            if not choice:
                break
            present = self.session.review.display()['present']
            if not choice.isdigit() or not 1 <= int(choice) <= len(present):
                print("Invalid choice")
                continue
            name = present[int(choice) - 1].name
            self.session.review.reject(name)
            print(f"Rejected match for {name}")
        self.session.review.finalize()

    def bulk_edit(self):
        """Move comma-separated names to another status after confirmation"""
        review = self.session.review
        while True:
            names = self.input("\nNames to move (comma separated, Enter to skip): ").strip()
            if not names:
                return
            review.clear_selection()
            review.select(n.strip() for n in names.split(','))
            if not review.selected:
                print("None of those names are in the report")
                continue
            status = self.input("New status (present/absent/unexpected): ").strip().upper()
            try:
                target = AttendanceStatus(status)
            except ValueError:
                print("Invalid status")
                review.clear_selection()
                continue

            def confirm(selected, target_status):
                return self.ask_yes_no(
                    f"Change the status of {len(selected)} name(s) to \"{STATUS_LABELS[target_status]}\". Are you sure?")

            moved = review.bulk_reclassify(target, confirm)
            if moved:
                print(f"Moved {moved} name(s)")
            else:
                print("No changes made")
                review.clear_selection()

    def export(self, path: str):
        report = self.session.review.report
        data = to_csv_bytes(report) if path.lower().endswith('.csv') else to_xlsx_bytes(report)
        Path(path).write_bytes(data)
        print(f"Report saved to {path}")


def build_capabilities(matcher_name: str):
    settings = load_settings()
    from reconciler.gemini_service import GeminiNameExtractor, GeminiNameMatcher
    extractor = GeminiNameExtractor(api_key=settings.gemini_api_key, model_name=settings.gemini_model)
    if matcher_name == 'fuzzy':
        matcher = FuzzyNameMatcher()
    else:
        matcher = GeminiNameMatcher(model=extractor.model)
    return extractor, matcher


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Reconcile a roster with Zoom participant screenshots")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--roster", help="Official roster spreadsheet (.xlsx, .xlsm, .csv)")
    source.add_argument("--roster-image", help="Photo of the printed official roster")
    parser.add_argument("--screenshots", nargs="+", required=True, help="Zoom participant list screenshots")
    parser.add_argument("--sensitivity", default="BALANCED",
                        choices=[s.value for s in MatchSensitivity], type=str.upper)
    parser.add_argument("--matcher", default=settings.name_matcher, choices=["gemini", "fuzzy"])
    parser.add_argument("--export", help="Write the final report to this .xlsx or .csv path")
    parser.add_argument("--yes", action="store_true", help="Accept all matches without reviewing")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level, settings.log_file)
    try:
        extractor, matcher = build_capabilities(args.matcher)
    except AttendanceError as e:
        print(f"Error: {e}. Set it with: export GEMINI_API_KEY='your-api-key'")
        return 1

    terminal = AttendanceTerminal(extractor, matcher, workers=settings.extraction_workers)
    try:
        terminal.load_inputs(args.roster, args.roster_image, args.screenshots)
    except (OSError, AttendanceError) as e:
        print(f"Error: {e}")
        return 1

    if not terminal.analyze(MatchSensitivity.parse(args.sensitivity)):
        return 1

    if args.yes:
        terminal.session.review.finalize()
    else:
        terminal.review_draft()
        terminal.bulk_edit()

    terminal.show_report("Final attendance report")
    if args.export:
        terminal.export(args.export)
    return 0


if __name__ == "__main__":
    sys.exit(main())
