"""Minimal JSON-over-HTTPS transport shared by the provider adapters."""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import LLMTransportError

__all__ = ["Transport", "post_json", "is_transient_status"]


Transport = Callable[[Dict[str, Any], Optional[float]], str]

_TRANSIENT_STATUSES = {408, 409, 425, 429}


def is_transient_status(status: int) -> bool:
    """Return True for HTTP statuses that may succeed on a plain retry."""
    return status in _TRANSIENT_STATUSES or status >= 500


def post_json(
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Mapping[str, str],
    timeout: float,
    label: str,
) -> str:
    """POST ``payload`` as JSON and return the decoded body."""
    if os.getenv("PLANNER_DEBUG_PAYLOAD"):
        print(f"[{label}] request payload:")
        print(json.dumps(payload, indent=2, sort_keys=True))

    data = json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
            status = getattr(response, "status", 200)
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"{label} response timed out.") from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        message = error.read().decode("utf-8", errors="ignore")
        raise LLMTransportError(
            f"HTTP {error.code}: {message}",
            transient=is_transient_status(error.code),
            status=error.code,
        ) from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"Failed to reach {label} endpoint: {error.reason}") from error

    if status >= 400:
        raise LLMTransportError(
            f"Unexpected HTTP status {status}",
            transient=is_transient_status(status),
            status=status,
        )

    return raw.decode("utf-8")
