"""
VeriSearch Utilities
=====================

Process-level helpers: run ids and seeding, log setup for the CLI,
prompt-safe truncation, and JSON result export.
"""

from __future__ import annotations

import json
import logging
import random
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Optional

import numpy as np

# Transport loggers of the generation backend; chatty at INFO.
NOISY_LOGGERS = ("openai", "httpx", "httpcore")


# ── Runs ───────────────────────────────────────────────────────────

def set_all_seeds(seed: int = 42) -> None:
    """
    Pin the process-wide Python and NumPy RNGs.

    Generators get explicit per-call seeds through SamplingParams, so
    this only affects heuristics and tests that draw from the global
    RNGs.
    """
    random.seed(seed)
    np.random.seed(seed)


def generate_run_id() -> str:
    """``verisearch-<YYYYmmdd-HHMMSS>-<8 hex>``, stamped on every PipelineResult."""
    return f"verisearch-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


# ── Logging ────────────────────────────────────────────────────────

class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, tagged with the run id when known."""

    def __init__(self, run_id: Optional[str] = None):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.run_id:
            entry["run_id"] = self.run_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    level: str = "INFO",
    format_style: str = "text",
    run_id: Optional[str] = None,
) -> logging.Logger:
    """
    Attach a single stdout handler to the ``verisearch`` logger tree.

    Args:
        level: Level name for VeriSearch loggers.
        format_style: "json" or "text".
        run_id: Included in every line when given.
    """
    root = logging.getLogger("verisearch")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format_style == "json":
        handler.setFormatter(JsonLogFormatter(run_id))
    else:
        tag = f" | {run_id}" if run_id else ""
        handler.setFormatter(logging.Formatter(
            f"%(asctime)s | %(levelname)-8s{tag} | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        ))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


# ── Text / IO ──────────────────────────────────────────────────────

def truncate_text(text: str, max_chars: int = 4000, marker: str = " …[truncated]") -> str:
    """Cap candidate text before it goes into a judge prompt."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker


def save_json(data: Any, path: str | Path, indent: int = 2) -> Path:
    """Write ``data`` as UTF-8 JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=indent, ensure_ascii=False, default=str), encoding="utf-8")
    return path
