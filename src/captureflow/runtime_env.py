"""Process environment bootstrap from ``.env`` files."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

LOGGER = logging.getLogger(__name__)

DISABLE_DOTENV_ENV = "CAPTUREFLOW_DISABLE_DOTENV"


def dotenv_disabled() -> bool:
    return os.getenv(DISABLE_DOTENV_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def load_runtime_env(*, filename: str = ".env") -> Path | None:
    """Load ``filename`` from the working directory or its parents.

    Variables already exported in the process win over the file. Returns the
    file that was read, or ``None`` when loading is disabled or no file with
    any variables was found.
    """
    if dotenv_disabled():
        LOGGER.debug("%s is set; skipping %s", DISABLE_DOTENV_ENV, filename)
        return None

    found = find_dotenv(filename=filename, usecwd=True)
    if not found or not load_dotenv(dotenv_path=found, override=False):
        return None
    LOGGER.debug("Loaded runtime environment from %s", found)
    return Path(found)
