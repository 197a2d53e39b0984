"""
Module: grade_vision.config

Purpose:
    Runtime settings read from the environment, plus logging setup.

Key Classes:
    - Settings: immutable, validated on construction

Environment variables:
    GEMINI_API_KEY / GOOGLE_API_KEY    enables AI-assisted assessment
    GRADE_VISION_MODEL                 Gemini model name
    GRADE_VISION_TEMPERATURE           sampling temperature for the model
    GRADE_VISION_ORACLE_RETRIES        extra attempts after an oracle failure
    GRADE_VISION_MAX_WORKERS           subjects assessed concurrently
    GRADE_VISION_AUTO_COMMIT_SECURED   commit tiers already secured on internal marks
    GRADE_VISION_LOG_LEVEL             logging level name
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from grade_vision.oracle import DEFAULT_MODEL

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        gemini_api_key: API key for the Gemini oracle, None disables AI mode
        gemini_model: model name passed to google-generativeai
        temperature: sampling temperature for the model
        oracle_retries: extra attempts after an oracle failure
        max_workers: subjects assessed concurrently in batch mode
        auto_commit_secured: commit a tier without asking when internal
            marks alone already reach it
        log_level: logging level name
    """

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    temperature: float = 0.1
    oracle_retries: int = 1
    max_workers: int = 1
    auto_commit_secured: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        if self.oracle_retries < 0:
            raise ValueError("oracle_retries must be >= 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0 and 2")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

    @property
    def has_ai(self) -> bool:
        return bool(self.gemini_api_key)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_number(name: str, raw: str, kind):
    try:
        return kind(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be {kind.__name__}, got {raw!r}") from e


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    defaults = Settings()

    return Settings(
        gemini_api_key=env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY") or None,
        gemini_model=env.get("GRADE_VISION_MODEL", defaults.gemini_model),
        temperature=_parse_number(
            "GRADE_VISION_TEMPERATURE",
            env.get("GRADE_VISION_TEMPERATURE", str(defaults.temperature)),
            float,
        ),
        oracle_retries=_parse_number(
            "GRADE_VISION_ORACLE_RETRIES",
            env.get("GRADE_VISION_ORACLE_RETRIES", str(defaults.oracle_retries)),
            int,
        ),
        max_workers=_parse_number(
            "GRADE_VISION_MAX_WORKERS",
            env.get("GRADE_VISION_MAX_WORKERS", str(defaults.max_workers)),
            int,
        ),
        auto_commit_secured=_parse_bool(
            "GRADE_VISION_AUTO_COMMIT_SECURED",
            env.get("GRADE_VISION_AUTO_COMMIT_SECURED", ""),
        ),
        log_level=env.get("GRADE_VISION_LOG_LEVEL", defaults.log_level),
    )


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("grade_vision")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger
