"""
Gemini API Prompt Templates for Name Extraction and Matching

This module contains the prompt templates sent to Google's Gemini API when
reading names out of images and when reconciling the official roster with
the Zoom participant list.
"""

from typing import Iterable

from .models import MatchSensitivity


OFFICIAL_LIST_PROMPT = """This is an official registration list. Extract ALL full names of people.
Ignore headers, numbers, or dates. Return ONLY names, one per line, with no extra commentary.
Support Arabic and English."""

PARTICIPANT_LIST_PROMPT = """This is a Zoom participant list. Identify and extract ALL participant names.
Ignore technical details like "(Host)", "(Me)", "(Co-host)", icons, or status.
Return ONLY names, one per line, with no extra commentary."""

SENSITIVITY_INSTRUCTIONS = {
    MatchSensitivity.STRICT: (
        "Be very strict. Only match names that are clearly the same person with very minor differences."
    ),
    MatchSensitivity.BALANCED: (
        "Allow common spelling variations, cross-lingual matches (Arabic/English), "
        "and ignore titles like 'Dr.', 'Pharmacist'."
    ),
    MatchSensitivity.FLEXIBLE: (
        "Be very aggressive. Ignore all titles. Match even if only parts of the name match or typos exist."
    ),
}


def create_extraction_prompt(is_official_list: bool) -> str:
    """Instruction text that accompanies an image sent for name extraction"""
    return OFFICIAL_LIST_PROMPT if is_official_list else PARTICIPANT_LIST_PROMPT


def create_matching_prompt(official_names: Iterable[str], zoom_names: Iterable[str],
                           sensitivity: MatchSensitivity) -> str:
    """Create prompt for matching the official roster (List A) against Zoom names (List B)"""
    official_block = "\n".join(official_names)
    zoom_block = "\n".join(zoom_names)

    prompt = f"""Compare List A (Official) with List B (Zoom).
Sensitivity: {SENSITIVITY_INSTRUCTIONS[sensitivity]}

RULES:
- Every name in List A must appear exactly once, either in "present" or in "absent".
- Every name in List B must appear at most once, either as an "originalName" in "present" or in "unexpected".
- Copy names exactly as they are written in the lists. Do not translate or correct them.

List A (Official):
{official_block}

List B (Zoom):
{zoom_block}

Return a JSON object:
{{
  "present": [{{"name": "Name from List A", "originalName": "Matched from List B"}}],
  "absent": ["Names from List A not found"],
  "unexpected": ["Names in List B not in List A"]
}}
"""
    return prompt
