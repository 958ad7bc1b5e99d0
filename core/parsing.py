# core/parsing.py
# Provider output parsing: free text (maybe JSON, maybe fenced) -> structured card fields.
# Each extractor returns an optional candidate; the first one that decodes wins.
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from config.settings import EXAMPLES_MAX
from core.prompts import KIND_FULL_CARD, KIND_THREE_EXAMPLES, normalize_kind

__all__ = [
    "StructuredCardContent",
    "ParseOutcome",
    "ParseFailure",
    "parse_card_response",
    "normalize_examples",
    "extract_examples",
]

RE_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
RE_FENCE_MARKER = re.compile(r"```(?:json)?", re.IGNORECASE)
# Leading "1." / "2)" / "-" / "*" / "•" list markers; a marker must be followed by whitespace
RE_ORDINAL = re.compile(r"^(?:\d+[.)]|[-*•])(?=\s)\s*")
_QUOTE_CHARS = "\"'“”‘’«»"

Extractor = Callable[[str], Optional[str]]


@dataclass
class StructuredCardContent:
    """Normalized flashcard fields. `examples` is always a list."""

    text: str = ""
    transcription: str = ""
    translation: str = ""
    short_description: str = ""
    explanation: str = ""
    examples: List[str] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "transcription": self.transcription,
            "translation": self.translation,
            "shortDescription": self.short_description,
            "explanation": self.explanation,
            "examples": list(self.examples),
            "notes": self.notes,
        }


@dataclass
class ParseOutcome:
    """Uniform `{result, raw}` wrapper for every requested kind."""

    result: Any
    raw: str
    parsed: bool


@dataclass
class ParseFailure:
    """Structure could not be recovered; callers surface `raw` to the user."""

    raw: str
    reason: str = "unparseable"


# -----------------
# Extractors
# -----------------

def _fenced_block(text: str) -> Optional[str]:
    match = RE_CODE_FENCE.search(text)
    return match.group(1).strip() if match else None


def _balanced_span(text: str, open_ch: str, close_ch: str) -> Optional[str]:
    """First top-level span from `open_ch` to its matching `close_ch`.

    Brackets inside JSON strings are ignored. If the span never closes, fall
    back to the greedy span ending at the last `close_ch`.
    """
    start = text.find(open_ch)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    end = text.rfind(close_ch)
    return text[start : end + 1] if end > start else None


def _object_span(text: str) -> Optional[str]:
    return _balanced_span(text, "{", "}")


def _array_span(text: str) -> Optional[str]:
    return _balanced_span(text, "[", "]")


def _whole_text(text: str) -> Optional[str]:
    return text


CARD_EXTRACTORS: Sequence[Extractor] = (_fenced_block, _object_span, _whole_text)
EXAMPLE_EXTRACTORS: Sequence[Extractor] = (_fenced_block, _array_span)


def _decode(candidate: str) -> Any:
    cleaned = RE_FENCE_MARKER.sub("", candidate).strip()
    if not cleaned:
        return None
    try:
        return json.loads(cleaned)
    except ValueError:
        return None


def _first_decoded(text: str, extractors: Sequence[Extractor], accept: Callable[[Any], Any]) -> Any:
    for extractor in extractors:
        candidate = extractor(text)
        if candidate is None:
            continue
        value = accept(_decode(candidate))
        if value is not None:
            return value
    return None


# -----------------
# Normalization
# -----------------

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def normalize_examples(value: Any, legacy: Any = None) -> List[str]:
    """Coerce an `examples` value to a list of at most three non-empty strings.

    A bare string becomes a one-element list. When nothing usable is present,
    a non-empty legacy singular `example` is used instead.
    """
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = [item for item in value if isinstance(item, str)]
    else:
        items = []
    examples = [item.strip() for item in items if item.strip()][:EXAMPLES_MAX]
    if not examples and isinstance(legacy, str) and legacy.strip():
        examples = [legacy.strip()]
    return examples


def _card_from_mapping(data: Mapping[str, Any], lexical_item: Optional[str]) -> StructuredCardContent:
    text = lexical_item if lexical_item is not None else _as_text(data.get("text"))
    return StructuredCardContent(
        text=text,
        transcription=_as_text(data.get("transcription")),
        translation=_as_text(data.get("translation")),
        short_description=_as_text(data.get("shortDescription")),
        explanation=_as_text(data.get("explanation")),
        examples=normalize_examples(data.get("examples"), data.get("example")),
        notes=_as_text(data.get("notes")),
    )


def _accept_object(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def _accept_examples(value: Any) -> Optional[List[str]]:
    if isinstance(value, dict):
        value = value.get("examples")
    if not isinstance(value, list):
        return None
    return normalize_examples(value) or None


def _examples_from_lines(raw: str) -> List[str]:
    """Line heuristic for plain-text example lists."""
    examples: List[str] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line or line.startswith("```") or line in {"[", "]"}:
            continue
        marker = RE_ORDINAL.match(line)
        # Intro lines such as "Here are three examples:" only lead the list
        if not examples and not marker and line.endswith(":"):
            continue
        if marker:
            line = line[marker.end():].strip()
        # Lines of an unterminated JSON array: ["First", / "Second"]
        line = line.rstrip(",").strip().lstrip("[").rstrip("]").strip().rstrip(",")
        line = line.strip().strip(_QUOTE_CHARS).strip()
        if line:
            examples.append(line)
        if len(examples) >= EXAMPLES_MAX:
            break
    return examples


def extract_examples(raw: str) -> Tuple[List[str], bool]:
    """Return `(examples, decoded_as_json)` for a three-examples answer."""
    decoded = _first_decoded(raw or "", EXAMPLE_EXTRACTORS, _accept_examples)
    if decoded is not None:
        return decoded, True
    return _examples_from_lines(raw or ""), False


def parse_card_response(
    raw: str,
    kind: Optional[str] = None,
    lexical_item: Optional[str] = None,
) -> Union[ParseOutcome, ParseFailure]:
    """Turn provider output into a result for the requested kind.

    fullCard: decoded object, `text` forced to `lexical_item` when given,
    or ParseFailure. threeExamples: list of strings (JSON first, line
    heuristic second). Anything else: the raw text verbatim.
    """
    raw = raw or ""
    kind = normalize_kind(kind)

    if kind == KIND_FULL_CARD:
        data = _first_decoded(raw, CARD_EXTRACTORS, _accept_object)
        if data is None:
            return ParseFailure(raw=raw)
        return ParseOutcome(result=_card_from_mapping(data, lexical_item), raw=raw, parsed=True)

    if kind == KIND_THREE_EXAMPLES:
        examples, decoded = extract_examples(raw)
        return ParseOutcome(result=examples, raw=raw, parsed=decoded)

    return ParseOutcome(result=raw, raw=raw, parsed=False)
