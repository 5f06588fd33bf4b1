"""
Runtime settings and logging setup.

Settings come from environment variables so the Flask app and the
terminal front end share one configuration source.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'gemini-2.0-flash'
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str = ''
    gemini_model: str = DEFAULT_MODEL
    name_matcher: str = 'gemini'
    extraction_workers: int = 1
    max_upload_mb: int = 16
    max_sessions: int = 100
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    frontend_origin: str = 'http://localhost:3000'
    secret_key: Optional[str] = None


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer; using {default}")
        return default
    if value < minimum:
        logger.warning(f"{name}={value} is below {minimum}; using {default}")
        return default
    return value


def load_settings() -> Settings:
    """Build Settings from the current environment"""
    matcher = os.getenv('NAME_MATCHER', 'gemini').strip().lower() or 'gemini'
    if matcher not in ('gemini', 'fuzzy'):
        logger.warning(f"NAME_MATCHER={matcher!r} is not supported; using 'gemini'")
        matcher = 'gemini'
    return Settings(
        gemini_api_key=os.getenv('GEMINI_API_KEY', '').strip(),
        gemini_model=os.getenv('GEMINI_MODEL', DEFAULT_MODEL).strip() or DEFAULT_MODEL,
        name_matcher=matcher,
        extraction_workers=_int_env('EXTRACTION_WORKERS', 1),
        max_upload_mb=_int_env('MAX_UPLOAD_MB', 16),
        max_sessions=_int_env('MAX_SESSIONS', 100),
        log_level=os.getenv('ATTENDANCE_LOG_LEVEL', 'INFO').strip().upper() or 'INFO',
        log_file=os.getenv('ATTENDANCE_LOG_FILE', '').strip() or None,
        frontend_origin=os.getenv('FRONTEND_ORIGIN', 'http://localhost:3000').strip(),
        secret_key=os.getenv('FLASK_SECRET_KEY') or None,
    )


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger once: stdout plus an optional UTF-8 log file"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if getattr(root, '_attendance_configured', False):
        return root

    fmt = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    root.addHandler(sh)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding='utf-8')
        fh.setFormatter(fmt)
        root.addHandler(fh)

    root._attendance_configured = True
    return root
