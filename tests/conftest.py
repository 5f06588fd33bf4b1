# tests/conftest.py
import io
import json

import pytest
from PIL import Image

from reconciler.engine import NameExtractor, NameMatcher


def png_bytes(color="white", size=(8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class ScriptedExtractor(NameExtractor):
    """Returns canned names per call, keyed by the image payload"""

    def __init__(self, by_image=None, official=None, default=None):
        self.by_image = by_image or {}
        self.official = official or []
        self.default = default or []
        self.calls = []

    def extract(self, image, is_official_list=False):
        self.calls.append((image, is_official_list))
        if is_official_list:
            return list(self.official)
        return list(self.by_image.get(image, self.default))


class ScriptedMatcher(NameMatcher):
    """Answers with a fixed payload (dict or text) and records its inputs"""

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def match(self, official_names, observed_names, sensitivity):
        self.calls.append((list(official_names), list(observed_names), sensitivity))
        return self.answer


@pytest.fixture
def png():
    return png_bytes()


@pytest.fixture
def sample_answer():
    return json.dumps({
        "present": [{"name": "Ahmed Hassan", "originalName": "ahmed h"}],
        "absent": ["Mona Adel"],
        "unexpected": ["Guest 1"],
    })
