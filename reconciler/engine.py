"""
Reconciliation engine: Zoom screenshots + official roster -> draft report.

The engine only talks to two pluggable capabilities:

- a NameExtractor, which turns one image into a list of names, and
- a NameMatcher, which receives the official list, the observed list and a
  sensitivity level and answers with the JSON contract
  {"present": [{"name", "originalName"}], "absent": [...], "unexpected": [...]}

Whether matching is done by an LLM or by local string similarity is not
visible here.
"""

import json
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Union

from .errors import AnalysisCancelledError, EmptyObservedSetError, MatchParseError
from .models import AttendanceStatus, Attendee, MatchSensitivity, ProcessingResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class NameExtractor:
    """Reads person names out of an image payload"""

    def extract(self, image, is_official_list: bool = False) -> List[str]:
        raise NotImplementedError


class NameMatcher:
    """Reconciles two name lists; returns the JSON contract as text or as a dict"""

    def match(self, official_names: Sequence[str], observed_names: Sequence[str],
              sensitivity: MatchSensitivity) -> Union[str, Dict]:
        raise NotImplementedError


def _noop_progress(message: str) -> None:
    pass


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise AnalysisCancelledError()


def collect_observed_names(images: Sequence, extractor: NameExtractor,
                           on_progress: ProgressCallback = _noop_progress,
                           workers: int = 1,
                           cancel_event: Optional[threading.Event] = None) -> List[str]:
    """
    Extract names from every screenshot and merge them into one
    de-duplicated list (first-seen order).

    Progress messages are emitted in input order. With workers > 1 the
    extractions run in a thread pool, but all of them are joined before
    the union is built.
    """
    results: List[List[str]] = []
    if workers > 1 and len(images) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = []
            for i, image in enumerate(images, 1):
                _check_cancelled(cancel_event)
                on_progress(f"Extracting attendees from Zoom screenshot {i}...")
                futures.append(pool.submit(extractor.extract, image, False))
            results = [f.result() for f in futures]
        _check_cancelled(cancel_event)
    else:
        for i, image in enumerate(images, 1):
            _check_cancelled(cancel_event)
            on_progress(f"Extracting attendees from Zoom screenshot {i}...")
            results.append(extractor.extract(image, False))

    observed: Dict[str, None] = {}
    for names in results:
        for name in names or []:
            observed.setdefault(name, None)
    return list(observed)


def _load_payload(raw) -> Dict:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode('utf-8', errors='replace')
    if not isinstance(raw, str):
        raise MatchParseError()
    text = CODE_FENCE.sub('', raw.strip())
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MatchParseError() from e
    if not isinstance(payload, dict):
        raise MatchParseError()
    return payload


def _string_list(payload: Dict, key: str) -> List[str]:
    values = payload.get(key)
    if not isinstance(values, list):
        raise MatchParseError()
    names = []
    for value in values:
        if not isinstance(value, str):
            raise MatchParseError()
        if value.strip():
            names.append(value.strip())
    return names


def parse_match_response(raw, official_names: Optional[Sequence[str]] = None,
                         observed_names: Optional[Sequence[str]] = None) -> ProcessingResult:
    """
    Validate the matcher's answer and turn it into a report.

    Each name is kept in the first bucket it appears in (present, then
    absent, then unexpected); observed names already used by a match are
    not repeated as unexpected. When the input lists are given, entries
    naming anyone who is not on them are dropped, so a name the matcher
    rewrote cannot enter the report.

    Raises:
        MatchParseError: if the answer does not follow the contract
    """
    payload = _load_payload(raw)

    matches = payload.get('present')
    if not isinstance(matches, list):
        raise MatchParseError()
    absent = _string_list(payload, 'absent')
    unexpected = _string_list(payload, 'unexpected')

    official = None if official_names is None else set(official_names)
    observed = None if observed_names is None else set(observed_names)

    result = ProcessingResult()
    matched_observed = set()
    for item in matches:
        if not isinstance(item, dict):
            raise MatchParseError()
        name, original = item.get('name'), item.get('originalName')
        if not isinstance(name, str) or not isinstance(original, str):
            raise MatchParseError()
        if not name.strip() or not original.strip():
            raise MatchParseError()
        name, original = name.strip(), original.strip()
        if official is not None and name not in official:
            logger.warning(f"Dropping match {name!r}: not on the roster")
            continue
        if observed is not None and original not in observed:
            logger.warning(f"Dropping match {name!r} <- {original!r}: Zoom name was never extracted")
            continue
        if original in matched_observed:
            logger.warning(f"Dropping match {name!r}: {original!r} is already matched")
            continue
        if result.add(Attendee(name, AttendanceStatus.PRESENT, original)):
            matched_observed.add(original)
        else:
            logger.warning(f"Matcher returned {name!r} twice; keeping its first entry")

    for name in absent:
        if official is not None and name not in official:
            logger.warning(f"Dropping absent entry {name!r}: not on the roster")
            continue
        if not result.add(Attendee(name, AttendanceStatus.ABSENT)):
            logger.warning(f"Dropping absent entry {name!r}: already in the report")

    for name in unexpected:
        if observed is not None and name not in observed:
            logger.warning(f"Dropping unexpected entry {name!r}: Zoom name was never extracted")
            continue
        if name in matched_observed:
            logger.warning(f"Dropping unexpected entry {name!r}: already matched to a roster name")
            continue
        if not result.add(Attendee(name, AttendanceStatus.UNEXPECTED)):
            logger.warning(f"Dropping unexpected entry {name!r}: already in the report")

    return result


def _fill_missing(result: ProcessingResult, official_names: Sequence[str], observed_names: Sequence[str]) -> None:
    """Names the matcher forgot: roster members become absent, Zoom names unexpected"""
    matched_observed = {a.original_name for a in result.present}
    for name in official_names:
        if name not in result:
            logger.warning(f"Matcher omitted roster name {name!r}; marking absent")
            result.add(Attendee(name, AttendanceStatus.ABSENT))
    for name in observed_names:
        if name not in result and name not in matched_observed:
            logger.warning(f"Matcher omitted Zoom name {name!r}; marking unexpected")
            result.add(Attendee(name, AttendanceStatus.UNEXPECTED))


def process_attendance(official_names: Sequence[str], images: Sequence, sensitivity: MatchSensitivity,
                       on_progress: Optional[ProgressCallback] = None, *,
                       extractor: NameExtractor, matcher: NameMatcher,
                       workers: int = 1,
                       cancel_event: Optional[threading.Event] = None) -> ProcessingResult:
    """
    Reconcile the official roster against the names seen in the screenshots.

    Args:
        official_names: roster names from the spreadsheet or roster photo
        images: Zoom participant screenshots (bytes, base64 or data URIs)
        sensitivity: how loosely names may be matched
        on_progress: receives a human-readable message before each step
        extractor: NameExtractor used for the screenshots
        matcher: NameMatcher used to reconcile the two lists
        workers: >1 extracts screenshots concurrently
        cancel_event: when set, the run stops with AnalysisCancelledError

    Returns:
        ProcessingResult with present, absent and unexpected attendees

    Raises:
        EmptyObservedSetError: no names were extracted from any screenshot
        MatchParseError: the matcher's answer could not be parsed
        AnalysisCancelledError: cancel_event was set
    """
    on_progress = on_progress or _noop_progress
    official = list(dict.fromkeys(official_names))

    observed = collect_observed_names(images, extractor, on_progress, workers, cancel_event)
    logger.info(f"Collected {len(observed)} unique Zoom names from {len(images)} screenshots")
    if not observed:
        raise EmptyObservedSetError()

    _check_cancelled(cancel_event)
    on_progress(f"Analyzing and matching names (sensitivity: {sensitivity.value})...")
    raw = matcher.match(official, observed, sensitivity)

    _check_cancelled(cancel_event)
    result = parse_match_response(raw, official, observed)
    _fill_missing(result, official, observed)
    logger.info(f"Matching finished: {result.counts()}")
    return result
