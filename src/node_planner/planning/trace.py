"""Best-effort JSON traces of finished planning sessions."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .schemas import PlanRequest, PlanResponse

__all__ = ["write_session_trace"]

LOGGER = logging.getLogger(__name__)


def write_session_trace(
    trace_dir: Path,
    request: PlanRequest,
    response: PlanResponse,
) -> Optional[Path]:
    """Persist one JSON file describing the session; return its path."""
    try:
        trace_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None

    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request": request.model_dump(mode="json"),
        "response": response.model_dump(mode="json"),
    }

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    status = "ok" if response.success else "failed"
    file_name = "__".join(["plan", _slug(response.plan_id), status, timestamp]) + ".json"
    path = trace_dir / file_name
    try:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
    except OSError as error:
        LOGGER.debug("could not write session trace %s: %s", path, error)
        return None
    return path


def _slug(value: str, *, fallback: str = "item", max_length: int = 80) -> str:
    """Normalise identifiers for use in trace filenames."""
    cleaned = re.sub(r"[^A-Za-z0-9]+", "-", value).strip("-")
    slug = cleaned or fallback
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix_length = max(max_length - len(digest) - 1, 1)
    prefix = slug[:prefix_length].rstrip("-") or slug[:prefix_length]
    return f"{prefix}-{digest}"
