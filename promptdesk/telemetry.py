"""Logging and telemetry for PromptDesk.

Emits structured log records to stdout and appends them to an append-only
log file for local review. This is the operational log; the audit record
of each attempt lives in the execution log (see ``promptdesk.audit``).
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("promptdesk")


def setup_logging(log_file: str, level: str = "INFO") -> None:
    """Attach stdout and append-only file handlers to the promptdesk logger.

    Calling this again is a no-op once handlers are attached.

    Args:
        log_file: Path to the operational log file.
        level: Logging level name, e.g. "INFO" or "DEBUG".
    """
    logger.setLevel(level)
    if logger.handlers:
        return

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    log_path = Path(log_file)
    os.makedirs(log_path.parent, exist_ok=True)

    for handler in (logging.StreamHandler(), logging.FileHandler(log_path, mode="a")):
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def log_generation(
    *,
    organization_id: str,
    prompt_id: Optional[str],
    model_id: Optional[str],
    outcome: str,
    status: int,
    duration_ms: int = 0,
    error: Optional[str] = None,
    log_id: Optional[str] = None
) -> None:
    """Log a single generation attempt.

    This writes a structured JSON line to both stdout and the log file.

    Args:
        organization_id: Tenant the attempt ran under.
        prompt_id: The prompt used (None if it could not be resolved).
        model_id: The model used (None if it could not be resolved).
        outcome: Short outcome label (e.g. "success", "provider_error").
        status: HTTP-style status returned to the caller.
        duration_ms: Provider round trip including response mapping.
        error: Error message if the attempt failed.
        log_id: Id of the execution log entry, if it was written.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "log_id": log_id,
        "organization_id": organization_id,
        "prompt_id": prompt_id,
        "model_id": model_id,
        "outcome": outcome,
        "status": status,
        "duration_ms": duration_ms,
    }

    if error:
        record["error"] = error

    logger.info(json.dumps(record))
