#!/usr/bin/env python3
"""
Switchboard Output Decoders

One decoder per backend output framing:

- JsonEnvelopeDecoder: a single JSON object with the text in a named field
- EventStreamDecoder: newline-delimited JSON events, last completed text wins
- PlainTextDecoder: raw stdout

Every decoder falls back to plain text when its framing does not parse.
Embedded JSON that cannot be extracted yields parsed=None, never an error.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger("switchboard.parsers")

FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
OUTER_JSON = re.compile(r"(\[[\s\S]*\]|\{[\s\S]*\})")

TEXT_CONTENT_TYPES = ("output_text", "text")


@dataclasses.dataclass(frozen=True)
class Decoded:
    """Backend output reduced to text plus optional structure."""
    text: str
    parsed: Optional[Any] = None
    cost_usd: Optional[float] = None


def extract_json(text: str) -> Optional[Any]:
    """Extract a JSON value from model text. Returns None if there is none.

    Tries, in order: a fenced ```json block, the whole text, and the
    outermost bracketed array/object embedded in prose.
    """
    if not isinstance(text, str):
        return None
    cleaned = text.strip()
    if not cleaned:
        return None

    candidates: List[str] = []
    fence = FENCED_BLOCK.search(cleaned)
    if fence:
        candidates.append(fence.group(1))
    candidates.append(cleaned)
    outer = OUTER_JSON.search(cleaned)
    if outer:
        candidates.append(outer.group(1))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def _as_cost(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class OutputDecoder:
    """Base decoder: raw stdout as text."""

    kind = "text"

    def decode(self, stdout: str) -> Decoded:
        text = stdout.strip()
        return Decoded(text=text, parsed=extract_json(text))


class PlainTextDecoder(OutputDecoder):
    """Raw text framing."""


class JsonEnvelopeDecoder(OutputDecoder):
    """Single JSON object; the first present field in text_fields holds the text."""

    kind = "json"

    def __init__(
        self,
        text_fields: Sequence[str] = ("result", "content", "response"),
        cost_fields: Sequence[str] = (),
    ):
        self.text_fields = tuple(text_fields)
        self.cost_fields = tuple(cost_fields)

    def decode(self, stdout: str) -> Decoded:
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError:
            logger.debug("Envelope is not JSON, treating output as plain text")
            return super().decode(stdout)

        # Some CLI versions emit an array of events ending in a result record
        if isinstance(data, list):
            data = self._result_record(data)
        if not isinstance(data, dict):
            return super().decode(stdout)

        value: Any = None
        for field in self.text_fields:
            if data.get(field) is not None:
                value = data[field]
                break
        if value is None:
            return super().decode(stdout)

        cost = None
        for field in self.cost_fields:
            cost = _as_cost(data.get(field))
            if cost is not None:
                break

        if isinstance(value, str):
            return Decoded(text=value, parsed=extract_json(value), cost_usd=cost)
        # Structured payload delivered directly
        return Decoded(text=json.dumps(value, ensure_ascii=False), parsed=value, cost_usd=cost)

    @staticmethod
    def _result_record(events: List[Any]) -> Optional[Dict[str, Any]]:
        for entry in reversed(events):
            if isinstance(entry, dict) and entry.get("type") == "result":
                return entry
        return None


class EventStreamDecoder(OutputDecoder):
    """Newline-delimited JSON events; the latest completed textual payload wins."""

    kind = "jsonl"

    def decode(self, stdout: str) -> Decoded:
        text = ""
        for line in stdout.strip().splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            found = self._event_text(event)
            if found:
                text = found

        if not text:
            return super().decode(stdout)
        return Decoded(text=text, parsed=extract_json(text))

    @staticmethod
    def _content_text(contents: Any) -> str:
        text = ""
        if not isinstance(contents, list):
            return text
        for content in contents:
            if isinstance(content, dict) and content.get("type") in TEXT_CONTENT_TYPES:
                text = content.get("text") or content.get("content") or text
        return text

    def _event_text(self, event: Dict[str, Any]) -> str:
        text = ""
        event_type = event.get("type")

        item = event.get("item")
        if event_type == "item.completed" and isinstance(item, dict):
            text = self._content_text(item.get("content")) or text
            # Newer codex builds put agent messages directly on the item
            if item.get("type") == "agent_message" and isinstance(item.get("text"), str):
                text = item["text"]

        turn = event.get("turn")
        if event_type == "turn.completed" and isinstance(turn, dict):
            for output in turn.get("output") or []:
                if isinstance(output, dict):
                    text = self._content_text(output.get("content")) or text

        message = event.get("message")
        if isinstance(message, dict) and message.get("content"):
            content = message["content"]
            text = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)

        return text
