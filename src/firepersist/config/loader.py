import logging
import os
from pathlib import Path
from typing import Iterable

from .config import AppSettings


def _existing(paths: Iterable[Path]) -> list[Path]:
    return [p for p in paths if p.exists()]


def load_settings() -> AppSettings:
    # allow an explicit path via env var
    explicit = Path(os.environ["FIREPERSIST_ENV_FILE"]) if "FIREPERSIST_ENV_FILE" in os.environ else None
    if explicit is not None and not explicit.exists():
        raise FileNotFoundError(f"Explicitly specified env file not found: {explicit}")

    cwd = Path.cwd()
    candidates = _existing([
        cwd / ".env",
        cwd / ".env.local",
        *([explicit] if explicit else []),
    ])

    if not candidates:
        log = logging.getLogger("firepersist.config.loader")
        log.warning("No env files found; using defaults and env vars only.")
        return AppSettings()

    # Later files override earlier ones
    return AppSettings(_env_file=[str(p) for p in candidates])
