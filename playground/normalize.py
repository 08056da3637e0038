"""
Backend-agnostic response interpretation.

Text generation servers disagree on response shape. The extractors here
recognise a fixed set of shapes in priority order and fall back to empty
results instead of raising, so an unexpected body still settles a turn.

Recognised text shapes, first structural match wins:
1. {"text": [...]}                       raw generate servers
2. {"outputs": [{"text" | "output_text"}]}
3. {"choices": [{"text"} | {"message": {"content"}}]}   OpenAI completions/chat
4. {"generated_text": "..."}              single-text servers
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .models import UsageStats

logger = logging.getLogger(__name__)

COMPLETION_TOKEN_KEYS = (
    "completion_tokens",
    "generated_tokens",
    "num_generated_tokens",
    "num_output_tokens",
    "output_tokens",
    "generated_token_count",
)
PROMPT_TOKEN_KEYS = (
    "prompt_tokens",
    "num_input_tokens",
    "input_tokens",
    "prompt_token_count",
)
TOTAL_TOKEN_KEYS = (
    "total_tokens",
    "total_token_count",
)
STATS_NODE_KEYS = ("statistics", "stats", "meta")


def _integral_floats(item: Any) -> Any:
    # JSON.stringify style: 2.0 renders as 2
    if isinstance(item, float) and item.is_integer():
        return int(item)
    if isinstance(item, dict):
        return {k: _integral_floats(v) for k, v in item.items()}
    if isinstance(item, list):
        return [_integral_floats(v) for v in item]
    return item


def _stringify(item: Any) -> str:
    if isinstance(item, str):
        return item
    return json.dumps(_integral_floats(item), separators=(",", ":"), ensure_ascii=False)


def _output_text(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    if isinstance(item.get("text"), str):
        return item["text"]
    if isinstance(item.get("output_text"), str):
        return item["output_text"]
    return None


def _content_part_text(part: Any) -> str:
    if not isinstance(part, dict):
        return ""
    if isinstance(part.get("text"), str):
        return part["text"]
    if isinstance(part.get("content"), str):
        return part["content"]
    return ""


def _choice_text(choice: Any) -> Optional[str]:
    if not isinstance(choice, dict):
        return None
    if isinstance(choice.get("text"), str):
        return choice["text"]

    message = choice.get("message")
    if not isinstance(message, dict) or "content" not in message:
        return None

    content = message["content"]
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(_content_part_text(part) for part in content)
    return None


def extract_texts(payload: Any) -> List[str]:
    """Pull generated texts out of any recognised response body."""
    if not isinstance(payload, dict):
        return []

    if isinstance(payload.get("text"), list):
        return [s for s in (_stringify(item) for item in payload["text"]) if s]

    if isinstance(payload.get("outputs"), list):
        return [s for s in (_output_text(item) for item in payload["outputs"]) if s]

    if isinstance(payload.get("choices"), list):
        return [s for s in (_choice_text(choice) for choice in payload["choices"]) if s]

    if isinstance(payload.get("generated_text"), str):
        return [payload["generated_text"]]

    logger.debug(f"No text found in response with keys {sorted(payload)[:10]}")
    return []


def _token_count(value: Any) -> Optional[int]:
    # bool is an int subclass but never a token count
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _first_count(record: Dict[str, Any], keys) -> Optional[int]:
    for key in keys:
        if key in record:
            count = _token_count(record[key])
            if count is not None:
                return count
    return None


def _usage_candidates(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    stats_node = None
    for key in STATS_NODE_KEYS:
        if payload.get(key) is not None:
            stats_node = payload[key]
            break

    return [
        node for node in (payload.get("usage"), stats_node, payload)
        if isinstance(node, dict)
    ]


def extract_usage(payload: Any) -> UsageStats:
    """
    Collect token counts from usage, stats/meta and top-level fields.

    Candidates are merged left to right and the first value seen for a field
    is kept. A missing total is the sum of prompt and completion counts.
    """
    prompt = completion = total = None

    if isinstance(payload, dict):
        for record in _usage_candidates(payload):
            if completion is None:
                completion = _first_count(record, COMPLETION_TOKEN_KEYS)
            if prompt is None:
                prompt = _first_count(record, PROMPT_TOKEN_KEYS)
            if total is None:
                total = _first_count(record, TOTAL_TOKEN_KEYS)

    if total is None and prompt is not None and completion is not None:
        total = prompt + completion

    return UsageStats(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)
