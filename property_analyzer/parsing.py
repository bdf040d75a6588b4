"""
    Helpers that turn the analyser's free-form text into chattel items.
"""
import json
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from .baseModels import ChattelItem

BRACKET_PAIRS = {"{": "}", "[": "]"}


# ----- payload shapes -----
@dataclass(frozen=True)
class ItemsArray:
    entries: list


@dataclass(frozen=True)
class ItemsEnvelope:
    items: Any


@dataclass(frozen=True)
class Unrecognized:
    value: Any


ChattelPayload = Union[ItemsArray, ItemsEnvelope, Unrecognized]


def classify_chattel_payload(value: Any) -> ChattelPayload:
    """
    Tells apart a bare array of items from an {"items": [...]} envelope.
    """
    if isinstance(value, list):
        return ItemsArray(entries=value)
    if isinstance(value, dict):
        return ItemsEnvelope(items=value.get("items"))
    return Unrecognized(value=value)


# ----- extraction -----
def _reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant: {name}")


def loads_strict(text: str) -> Any:
    """
    json.loads that also rejects NaN, Infinity and -Infinity, which are not valid JSON.
    """
    return json.loads(text, parse_constant=_reject_constant)


def _greedy_span(text: str, opener: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(BRACKET_PAIRS[opener])
    if start == -1 or end < start:
        return None
    return text[start:end + 1]


def json_candidates(text: str) -> List[str]:
    """
    Candidate JSON substrings in priority order. Whichever bracket kind opens first in the text
    is tried first; each candidate runs from its first opener to the last matching closer.
    """
    openers = sorted((opener for opener in BRACKET_PAIRS if opener in text), key=text.find)
    candidates = []
    for opener in openers:
        span = _greedy_span(text, opener)
        if span is not None:
            candidates.append(span)
    return candidates


def extract_json(text: str) -> Optional[Any]:
    """
    Parses the first candidate that is valid JSON.
    Returns None when the text holds no candidate at all and re-raises the last
    decode error when candidates exist but none of them parse.
    """
    last_error = None
    for candidate in json_candidates(text):
        try:
            return loads_strict(candidate)
        except ValueError as e:
            last_error = e
    if last_error is not None:
        raise last_error
    return None


# ----- filtering -----
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_chattel_item(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    return (
        isinstance(value.get("name"), str)
        and _is_number(value.get("replacementCost"))
        and _is_number(value.get("confidence"))
    )


def filter_chattel_items(entries: Any) -> List[ChattelItem]:
    if not isinstance(entries, list):
        return []
    return [ChattelItem.model_validate(entry) for entry in entries if is_chattel_item(entry)]


def parse_chattel_items(text: str) -> List[ChattelItem]:
    """
    Pulls the well-formed chattel items out of the analyser's reply. Malformed entries are dropped.
    """
    payload = extract_json(text)
    if payload is None:
        return []

    shape = classify_chattel_payload(payload)
    if isinstance(shape, ItemsArray):
        return filter_chattel_items(shape.entries)
    if isinstance(shape, ItemsEnvelope):
        return filter_chattel_items(shape.items)
    return []
