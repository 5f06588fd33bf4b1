"""
Gemini-backed name extraction and name matching.

GeminiNameExtractor reads names out of a roster photo or a Zoom
participant screenshot. GeminiNameMatcher asks the model to reconcile two
name lists and returns its raw JSON answer; validating that answer is the
engine's job, since model output is never trusted as-is.
"""

import base64
import binascii
import io
import logging
import re
from typing import List, Optional, Sequence, TypedDict

import google.generativeai as genai
from PIL import Image, UnidentifiedImageError

from .config import DEFAULT_MODEL
from .engine import NameExtractor, NameMatcher
from .errors import CapabilityUnavailableError, ExtractionFailure, MatchParseError
from .gemini_prompts import create_extraction_prompt, create_matching_prompt
from .models import MatchSensitivity

logger = logging.getLogger(__name__)

BULLET_PREFIX = re.compile(r"^\s*(?:[-*•]+)\s*")


class PresentMatch(TypedDict):
    name: str
    originalName: str


class MatchReport(TypedDict):
    present: List[PresentMatch]
    absent: List[str]
    unexpected: List[str]


def build_gemini_model(api_key: Optional[str], model_name: str = DEFAULT_MODEL):
    """Configure the Gemini client and return a GenerativeModel"""
    if not api_key:
        raise CapabilityUnavailableError()
    genai.configure(api_key=api_key)
    return genai.GenerativeModel(model_name)


def decode_image_payload(payload) -> Image.Image:
    """
    Turn an uploaded image into a PIL image.

    Accepts raw bytes, a base64 string, a data URI
    ("data:image/png;base64,...") or an already opened PIL image.

    Raises:
        ExtractionFailure: if the payload is not a readable image
    """
    if isinstance(payload, Image.Image):
        return payload

    if isinstance(payload, (bytes, bytearray)) and bytes(payload[:5]) == b'data:':
        payload = bytes(payload).decode('ascii', errors='ignore')

    if isinstance(payload, str):
        encoded = payload.split(',', 1)[1] if ',' in payload else payload
        try:
            raw = base64.b64decode(encoded.strip())
        except (binascii.Error, ValueError) as e:
            raise ExtractionFailure("Image payload is not valid base64") from e
    elif isinstance(payload, (bytes, bytearray)):
        raw = bytes(payload)
    else:
        raise ExtractionFailure(f"Unsupported image payload type: {type(payload).__name__}")

    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ExtractionFailure("Payload is not a readable image") from e
    return image


def parse_name_lines(text: str) -> List[str]:
    """One name per line; drop list bullets, blanks and single characters"""
    names = []
    for line in (text or '').splitlines():
        name = BULLET_PREFIX.sub('', line).strip()
        if len(name) > 1:
            names.append(name)
    return names


class GeminiNameExtractor(NameExtractor):
    """Extract names from one image at a time with a multimodal Gemini model"""

    def __init__(self, model=None, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL):
        self.model = model if model is not None else build_gemini_model(api_key, model_name)

    def _extract(self, image, is_official_list: bool) -> List[str]:
        picture = decode_image_payload(image)
        prompt = create_extraction_prompt(is_official_list)
        try:
            response = self.model.generate_content([picture, prompt])
            text = response.text or ""
        except Exception as e:
            raise ExtractionFailure(f"Gemini extraction request failed: {e}") from e
        return parse_name_lines(text)

    def extract(self, image, is_official_list: bool = False) -> List[str]:
        """Names found in the image, or [] if the image could not be read"""
        try:
            names = self._extract(image, is_official_list)
        except ExtractionFailure:
            logger.exception("Error extracting names from image")
            return []
        logger.debug(f"Extracted {len(names)} names (official={is_official_list})")
        return names


class GeminiNameMatcher(NameMatcher):
    """Ask Gemini to reconcile the two name lists using a JSON response schema"""

    def __init__(self, model=None, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL):
        self.model = model if model is not None else build_gemini_model(api_key, model_name)

    def match(self, official_names: Sequence[str], observed_names: Sequence[str],
              sensitivity: MatchSensitivity) -> str:
        prompt = create_matching_prompt(official_names, observed_names, sensitivity)
        response = self.model.generate_content(
            prompt,
            generation_config=genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=MatchReport,
            ),
        )
        try:
            return response.text
        except ValueError as e:
            # .text raises when the candidate was blocked or empty
            raise MatchParseError() from e
