"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional


def configure_logging(level: str, log_dir: Optional[Path] = None) -> None:
    """Configure basic logging for CLI usage; adds a file handler when ``log_dir`` is given."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "broker.log"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=handlers,
    )
