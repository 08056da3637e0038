"""Backend modes and their default paths."""

from enum import Enum
from typing import Dict, Optional, Union

from .errors import ValidationError


class Mode(str, Enum):
    """Wire protocol a request targets."""
    RAW_GENERATE = "raw-generate"
    OPENAI_COMPLETIONS = "openai-completions"
    OPENAI_CHAT = "openai-chat"


DEFAULT_MODE = Mode.OPENAI_CHAT

MODE_ENDPOINTS: Dict[Mode, str] = {
    Mode.RAW_GENERATE: "/generate",
    Mode.OPENAI_COMPLETIONS: "/v1/completions",
    Mode.OPENAI_CHAT: "/v1/chat/completions",
}

MODEL_LIST_PATHS: Dict[Mode, str] = {
    Mode.OPENAI_COMPLETIONS: "/v1/models",
    Mode.OPENAI_CHAT: "/v1/models",
}


def resolve_mode(value: Union[Mode, str]) -> Mode:
    """Accept a Mode or its string value."""
    if isinstance(value, Mode):
        return value
    try:
        return Mode(str(value).strip())
    except ValueError:
        choices = ", ".join(m.value for m in Mode)
        raise ValidationError(f"Unknown mode '{value}' (expected one of: {choices})")


def default_endpoint(mode: Mode) -> str:
    return MODE_ENDPOINTS[mode]


def model_list_path(mode: Mode) -> Optional[str]:
    return MODEL_LIST_PATHS.get(mode)


def probe_path(mode: Mode) -> str:
    """Liveness probe target: the docs page for raw generate, the model list otherwise."""
    return "/docs" if mode == Mode.RAW_GENERATE else "/v1/models"


def requires_model(mode: Mode) -> bool:
    return mode != Mode.RAW_GENERATE


def switch_endpoint(current: str, previous: Mode, new: Mode) -> str:
    """
    Pick the endpoint path after a mode change.

    A blank path, or one still equal to the previous mode's default, follows
    the new mode's default. Anything else was typed by the user and is kept.
    """
    current = (current or "").strip()
    if not current or current == default_endpoint(previous):
        return default_endpoint(new)
    return current
