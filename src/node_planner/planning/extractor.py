"""Recover a single JSON document and its reasoning from free-text model output."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from .errors import ExtractionError

__all__ = ["Extraction", "Extractor", "extract_json", "extract_reasoning"]

LOGGER = logging.getLogger(__name__)

_FENCE = "```"
DEFAULT_MARKER_KEY = '"nodes"'

_REASONING_PATTERNS = (
    re.compile(r'"reasoning"\s*:\s*"((?:[^"\\]|\\.)*)"'),
    re.compile(r'reasoning["\s:]+([^{]+)', re.DOTALL),
    re.compile(r"Reasoning[:\s]+([^{]+)", re.DOTALL),
    re.compile(r"## Reasoning\s+([^#]+)", re.DOTALL),
)


@dataclass(frozen=True, slots=True)
class Extraction:
    """Extracted JSON text plus the best-effort reasoning segment."""

    document: str
    reasoning: str = ""


class Extractor:
    """Pull the graph JSON out of an LLM response."""

    def __init__(self, marker_key: str = DEFAULT_MARKER_KEY) -> None:
        self._marker_key = marker_key

    def extract(self, content: str) -> Extraction:
        """Return the embedded JSON document and reasoning, or raise ``ExtractionError``."""
        LOGGER.debug("extracting graph from LLM response (%d chars)", len(content))
        document = extract_json(content, marker_key=self._marker_key)
        return Extraction(document=document, reasoning=extract_reasoning(content))

    @staticmethod
    def parse_graph(document: str) -> Dict[str, Any]:
        """Decode an extracted document into a mapping."""
        try:
            graph = json.loads(document)
        except json.JSONDecodeError as error:
            raise ExtractionError(ExtractionError.MALFORMED, str(error)) from error
        if not isinstance(graph, dict):
            raise ExtractionError(ExtractionError.MALFORMED, "graph must be a JSON object")
        return graph


def extract_json(content: str, *, marker_key: str = DEFAULT_MARKER_KEY) -> str:
    """Return the first well-formed JSON document found in ``content``.

    Preference order: the whole text when it already is JSON, fenced code
    blocks tagged ``json`` or untagged, the first balanced object containing
    ``marker_key``, then the first balanced object that parses at all.
    """
    tracker = _FailureTracker()

    stripped = content.strip()
    if stripped[:1] in ("{", "[") and tracker.parses(stripped):
        return stripped

    for block in _fenced_blocks(content):
        if block and tracker.parses(block):
            return block

    spans = list(_balanced_spans(content))
    for start, end in spans:
        candidate = content[start:end]
        if marker_key in candidate and tracker.parses(candidate):
            return candidate

    for start, end in spans:
        candidate = content[start:end]
        if tracker.parses(candidate):
            return candidate

    if tracker.first_error is not None:
        raise ExtractionError(ExtractionError.MALFORMED, tracker.first_error)
    raise ExtractionError(ExtractionError.NO_JSON)


def extract_reasoning(content: str) -> str:
    """Return the text following a reasoning label, or ``""`` when absent."""
    for index, pattern in enumerate(_REASONING_PATTERNS):
        match = pattern.search(content)
        if not match:
            continue
        if index == 0:
            try:
                text = json.loads(f'"{match.group(1)}"')
            except json.JSONDecodeError:
                text = match.group(1)
        else:
            text = match.group(1)
        fence = text.find(_FENCE)
        if fence != -1:
            text = text[:fence]
        cleaned = text.strip().strip("\"'").strip()
        if cleaned:
            return cleaned
    return ""


class _FailureTracker:
    """Try candidates and remember the first decode error seen."""

    def __init__(self) -> None:
        self.first_error: Optional[str] = None

    def parses(self, candidate: str) -> bool:
        try:
            json.loads(candidate)
        except json.JSONDecodeError as error:
            if self.first_error is None:
                self.first_error = str(error)
            return False
        return True


def _fenced_blocks(content: str) -> Iterator[str]:
    """Yield the bodies of ```json and untagged fenced blocks, in order."""
    position = 0
    while True:
        start = content.find(_FENCE, position)
        if start == -1:
            return
        body_start = start + len(_FENCE)
        end = content.find(_FENCE, body_start)
        if end == -1:
            return
        block = content[body_start:end]
        position = end + len(_FENCE)

        newline = block.find("\n")
        if newline == -1:
            # Single-line fence such as ```json {"a": 1}```.
            body = block.strip()
            if body[:4].lower() == "json":
                body = body[4:]
            yield body.strip()
            continue

        info = block[:newline].strip().lower()
        if info in ("", "json"):
            yield block[newline + 1 :].strip()


def _balanced_spans(content: str) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` of every top-level balanced ``{...}`` span.

    String and escape state are tracked inside an open span so that braces
    within string literals do not move the depth counter. An opening brace that is never closed is skipped: the scan resumes just
    after it so later objects are still found.
    """
    position = 0
    while position < len(content):
        depth = 0
        start = -1
        in_string = False
        escaped = False

        for index in range(position, len(content)):
            char = content[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == "{":
                if depth == 0:
                    start = index
                depth += 1
            elif char == "}":
                if depth == 0:
                    continue
                depth -= 1
                if depth == 0:
                    yield start, index + 1
            elif char == '"' and depth > 0:
                in_string = True

        if depth == 0:
            return
        position = start + 1
