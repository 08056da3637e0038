"""Mode-specific request bodies."""

import logging
from typing import Any, Dict, List, Union

import pydantic

from .errors import ValidationError
from .models import GenerationParameters
from .modes import Mode, requires_model

logger = logging.getLogger(__name__)

RequestPayload = Dict[str, Any]


def make_parameters(**values: Any) -> GenerationParameters:
    """Construct GenerationParameters, reporting range violations as ValidationError."""
    try:
        return GenerationParameters(**values)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid generation parameters: {problems}") from e


def parse_stop_sequences(text: str) -> List[str]:
    """Split a comma-separated stop list, dropping blank items."""
    return [item.strip() for item in (text or "").split(",") if item.strip()]


def compose_prompt(system_prompt: str, user_prompt: str) -> str:
    system = (system_prompt or "").strip()
    if not system:
        return user_prompt
    return f"{system}\n\n{user_prompt}"


def _openai_stop(stops: List[str]) -> Union[str, List[str]]:
    # OpenAI accepts a bare string for a single stop sequence
    return stops[0] if len(stops) == 1 else list(stops)


def build_payload(mode: Mode, params: GenerationParameters) -> RequestPayload:
    """
    Build the request body for a mode.

    Raw generate sends `stop` as a list even for a single entry; the OpenAI
    modes collapse a single stop sequence to a string.

    Raises:
        ValidationError: empty user prompt, or no model for an OpenAI mode.
    """
    if not params.user_prompt or not params.user_prompt.strip():
        raise ValidationError("Please enter a message before sending.")

    model = (params.model or "").strip()
    if requires_model(mode) and not model:
        raise ValidationError("Model ID is required for OpenAI-compatible endpoints.")

    stops = list(params.stop_sequences or [])
    payload: RequestPayload = {}

    if mode == Mode.RAW_GENERATE:
        payload["prompt"] = compose_prompt(params.system_prompt, params.user_prompt)
        payload["max_tokens"] = params.max_tokens
        payload["temperature"] = params.temperature
        payload["top_p"] = params.top_p
        if params.min_p is not None:
            payload["min_p"] = params.min_p
        if params.repetition_penalty is not None:
            payload["repetition_penalty"] = params.repetition_penalty
        if stops:
            payload["stop"] = stops

    elif mode == Mode.OPENAI_COMPLETIONS:
        payload["model"] = model
        payload["prompt"] = compose_prompt(params.system_prompt, params.user_prompt)
        payload["max_tokens"] = params.max_tokens
        payload["temperature"] = params.temperature
        payload["top_p"] = params.top_p
        if stops:
            payload["stop"] = _openai_stop(stops)

    else:
        messages = []
        system = (params.system_prompt or "").strip()
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": params.user_prompt})

        payload["model"] = model
        payload["messages"] = messages
        payload["max_tokens"] = params.max_tokens
        payload["temperature"] = params.temperature
        payload["top_p"] = params.top_p
        if stops:
            payload["stop"] = _openai_stop(stops)

    logger.debug(f"Built {mode.value} payload with keys {sorted(payload)}")
    return payload
