"""
Offline name matcher.

Matches roster names to Zoom names with string similarity and a few
name-component rules instead of an LLM. It answers with the same JSON
contract as the Gemini matcher, so the engine can use either one.
It does not transliterate, so Arabic and Latin spellings of the same name
are not matched.
"""

import json
import re
import unicodedata
from difflib import SequenceMatcher
from typing import Dict, List, Sequence, Tuple

from .engine import NameMatcher
from .models import MatchSensitivity

HONORIFICS = {
    'dr', 'doctor', 'pharmacist', 'pharm', 'ph', 'mr', 'mrs', 'ms', 'miss', 'eng', 'prof',
    'د', 'دكتور', 'الدكتور', 'دكتورة', 'الدكتورة', 'صيدلي', 'الصيدلي', 'صيدلانية', 'الصيدلانية',
}

THRESHOLDS = {
    MatchSensitivity.STRICT: 0.92,
    MatchSensitivity.BALANCED: 0.8,
    MatchSensitivity.FLEXIBLE: 0.6,
}

NON_WORD = re.compile(r"[_\W]+")
PARENTHESES = re.compile(r"\([^)]*\)")


def name_tokens(name: str, strip_titles: bool = True) -> List[str]:
    """Lowercase word tokens without accents, punctuation, '(Host)'-style tags or titles"""
    text = PARENTHESES.sub(' ', name)
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch)).casefold()
    tokens = NON_WORD.sub(' ', text).split()
    if strip_titles:
        kept = [t for t in tokens if t not in HONORIFICS]
        if kept:
            tokens = kept
    return tokens


def _prefix_pair(a: str, b: str) -> bool:
    return a.startswith(b) or b.startswith(a)


def name_similarity(official: str, observed: str, sensitivity: MatchSensitivity) -> float:
    """Similarity in [0, 1] between two display names under a sensitivity level"""
    strict = sensitivity == MatchSensitivity.STRICT
    a = name_tokens(official, strip_titles=not strict)
    b = name_tokens(observed, strip_titles=not strict)
    if not a or not b:
        return 0.0

    joined_a, joined_b = ' '.join(a), ' '.join(b)
    if joined_a == joined_b:
        return 1.0
    score = SequenceMatcher(None, joined_a, joined_b).ratio()
    if strict:
        return score

    # Same words in a different order ("Ali, Sara" vs "Sara Ali")
    if sorted(a) == sorted(b):
        score = max(score, 0.95)

    # Same first name, later names abbreviated ("Sara A." vs "Sara Ali")
    if len(a) == len(b) and a[0] == b[0] and all(_prefix_pair(x, y) for x, y in zip(a[1:], b[1:])):
        score = max(score, 0.9)

    if sensitivity == MatchSensitivity.FLEXIBLE:
        shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
        if all(_prefix_pair(x, y) for x, y in zip(shorter, longer)):
            score = max(score, 0.85)
        if set(t for t in a if len(t) >= 3) & set(t for t in b if len(t) >= 3):
            score = max(score, 0.75)

    return score


class FuzzyNameMatcher(NameMatcher):
    """Greedy one-to-one matching by descending similarity"""

    def __init__(self, thresholds: Dict[MatchSensitivity, float] = None):
        self.thresholds = dict(THRESHOLDS)
        if thresholds:
            self.thresholds.update(thresholds)

    def pair_scores(self, official_names: Sequence[str], observed_names: Sequence[str],
                    sensitivity: MatchSensitivity) -> List[Tuple[float, int, int]]:
        threshold = self.thresholds[sensitivity]
        pairs = []
        for i, official in enumerate(official_names):
            for j, observed in enumerate(observed_names):
                score = name_similarity(official, observed, sensitivity)
                if score >= threshold:
                    pairs.append((score, i, j))
        # Ties go to the earlier roster name, then the earlier Zoom name
        pairs.sort(key=lambda p: (-p[0], p[1], p[2]))
        return pairs

    def match(self, official_names: Sequence[str], observed_names: Sequence[str],
              sensitivity: MatchSensitivity) -> str:
        matched: Dict[int, int] = {}
        used_observed = set()
        for _, i, j in self.pair_scores(official_names, observed_names, sensitivity):
            if i in matched or j in used_observed:
                continue
            matched[i] = j
            used_observed.add(j)

        payload = {
            'present': [
                {'name': name, 'originalName': observed_names[matched[i]]}
                for i, name in enumerate(official_names) if i in matched
            ],
            'absent': [name for i, name in enumerate(official_names) if i not in matched],
            'unexpected': [name for j, name in enumerate(observed_names) if j not in used_observed],
        }
        return json.dumps(payload, ensure_ascii=False)
