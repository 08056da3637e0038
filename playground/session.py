"""
Conversation session: turn list and the single in-flight request.

All mutation happens on the event loop thread. The one-request-at-a-time
rule is enforced by rejecting submit() while a turn is pending, not by a lock.
"""

import asyncio
import itertools
import logging
import time
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Union

from .client import GenerationClient
from .config import config
from .errors import CancellationError, TransportError, ValidationError
from .models import (
    ConversationTurn,
    GenerationParameters,
    GenerationResult,
    ModelDescriptor,
    Role,
    TurnState,
)
from .modes import (
    Mode,
    default_endpoint,
    model_list_path,
    probe_path,
    requires_model,
    resolve_mode,
    switch_endpoint,
)
from .normalize import extract_usage
from .payloads import build_payload, make_parameters
from .reasoning import split_reasoning

logger = logging.getLogger(__name__)

PENDING_PLACEHOLDER = "Awaiting model response..."
HIDDEN_REASONING_ONLY = "[Hidden reasoning only]"
NO_TEXT_RETURNED = "No text returned by the server."
CANCELLED_NOTICE = "Request cancelled."
UNKNOWN_ERROR = "An unknown error occurred."

TurnListener = Callable[[ConversationTurn], None]

SAMPLING_FIELDS = set(GenerationParameters.model_fields) - {"user_prompt"}


def default_parameters() -> GenerationParameters:
    """Generation parameters from the environment configuration."""
    return make_parameters(
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        top_p=config.top_p,
        min_p=config.min_p,
        repetition_penalty=config.repetition_penalty,
        stop_sequences=config.stop_sequences,
        model=config.model,
        system_prompt=config.system_prompt,
    )


def format_stats(turn: ConversationTurn) -> str:
    """Render completion tokens, duration and rate, skipping missing parts."""
    parts = []
    if turn.completion_tokens is not None:
        parts.append(f"Completion {turn.completion_tokens} tok")
    if turn.duration_ms is not None:
        parts.append(f"{turn.duration_ms / 1000:.2f} s")
    if turn.tokens_per_second is not None:
        parts.append(f"{turn.tokens_per_second:.1f} tok/s")
    return " · ".join(parts)


class ConversationSession:
    """
    One conversation against one backend.

    Tracks:
    - Ordered user/assistant turns
    - The active request task (the cancellation handle)
    - Backend selection (base URL, mode, endpoint) and sampling parameters
    - The model catalog for the active mode

    Each assistant turn starts PENDING and is settled exactly once by
    settle_success() or settle_failure(); the first notification wins.
    """

    def __init__(
        self,
        client: Optional[GenerationClient] = None,
        *,
        base_url: Optional[str] = None,
        mode: Union[Mode, str, None] = None,
        endpoint: Optional[str] = None,
        params: Optional[GenerationParameters] = None,
        settle_flash_seconds: Optional[float] = None,
    ):
        self.client = client or GenerationClient()
        self.base_url = (base_url or "").strip() or config.api_base
        self.mode = resolve_mode(mode or config.mode)
        self.endpoint = (endpoint or config.endpoint or default_endpoint(self.mode)).strip()
        self.params = params or default_parameters()
        self.settle_flash_seconds = (
            settle_flash_seconds if settle_flash_seconds is not None else config.settle_flash_seconds
        )

        self.turns: List[ConversationTurn] = []
        self.models: List[ModelDescriptor] = []

        self._active: Optional[asyncio.Task] = None
        self._counter = itertools.count()
        self._listeners: List[TurnListener] = []
        self._flash_timers: Dict[str, asyncio.TimerHandle] = {}

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: TurnListener):
        """Call listener with every created or changed turn."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: TurnListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, turn: ConversationTurn):
        for listener in list(self._listeners):
            try:
                listener(turn)
            except Exception:
                logger.exception(f"Turn listener failed for {turn.id}")

    @property
    def pending(self) -> Optional[ConversationTurn]:
        """The pending assistant turn, if any."""
        for turn in reversed(self.turns):
            if turn.state == TurnState.PENDING:
                return turn
        return None

    @property
    def busy(self) -> bool:
        return self.pending is not None

    def get_turn(self, turn_id: str) -> Optional[ConversationTurn]:
        for turn in self.turns:
            if turn.id == turn_id:
                return turn
        return None

    def last_stats(self) -> Optional[Dict[str, Any]]:
        """Usage and timing of the latest completed assistant turn."""
        for turn in reversed(self.turns):
            if turn.role == Role.ASSISTANT and turn.state == TurnState.COMPLETE:
                return {
                    "turn_id": turn.id,
                    "prompt_tokens": turn.prompt_tokens,
                    "completion_tokens": turn.completion_tokens,
                    "total_tokens": turn.total_tokens,
                    "duration_ms": turn.duration_ms,
                    "tokens_per_second": turn.tokens_per_second,
                    "summary": format_stats(turn),
                }
        return None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_mode(self, mode: Union[Mode, str]):
        """Switch backend mode, following the default endpoint if it was untouched."""
        new_mode = resolve_mode(mode)
        if new_mode == self.mode:
            return
        self.endpoint = switch_endpoint(self.endpoint, self.mode, new_mode)
        logger.info(f"Mode {self.mode.value} -> {new_mode.value}, endpoint {self.endpoint}")
        self.mode = new_mode
        self.models = []

    def update_settings(self, **changes: Any):
        """
        Apply backend and sampling changes.

        Accepts base_url, mode, endpoint and any GenerationParameters field
        except user_prompt. Sampling changes are validated as a whole before
        anything is applied.
        """
        unknown = set(changes) - SAMPLING_FIELDS - {"base_url", "mode", "endpoint"}
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        sampling = {k: v for k, v in changes.items() if k in SAMPLING_FIELDS}
        params = self.params
        if sampling:
            params = make_parameters(**{**self.params.model_dump(), **sampling})
        mode = resolve_mode(changes["mode"]) if "mode" in changes else None

        self.params = params
        if mode is not None:
            self.set_mode(mode)
        if "endpoint" in changes:
            self.endpoint = (changes["endpoint"] or "").strip() or default_endpoint(self.mode)
        if "base_url" in changes:
            # A blank base URL falls back to the configured one
            self.base_url = (changes["base_url"] or "").strip() or config.api_base

    def settings(self) -> Dict[str, Any]:
        data = self.params.model_dump(exclude={"user_prompt"})
        data.update(base_url=self.base_url, mode=self.mode.value, endpoint=self.endpoint)
        return data

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        return f"msg-{int(time.time() * 1000)}-{next(self._counter)}"

    def submit(self, prompt: str) -> asyncio.Task:
        """
        Start a generation for prompt.

        Appends a complete user turn and a pending assistant turn, then
        schedules the request. The returned task is the cancellation handle
        and resolves to the assistant turn once settled.

        Raises:
            ValidationError: a turn is pending, the prompt is blank, or the
                mode needs a model and none is selected. The session is
                left unchanged.
        """
        loop = asyncio.get_running_loop()

        if self.busy:
            raise ValidationError("A request is already in progress.")
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("Please enter a message before sending.")
        if requires_model(self.mode) and not self.params.model.strip():
            raise ValidationError("Model ID is required for OpenAI-compatible endpoints.")
        if not self.base_url or not self.endpoint:
            raise ValidationError("Both API base URL and endpoint path are required.")

        payload = build_payload(self.mode, self.params.model_copy(update={"user_prompt": prompt}))

        user_turn = ConversationTurn(id=self._next_id(), role=Role.USER, content=prompt)
        assistant = ConversationTurn(
            id=self._next_id(),
            role=Role.ASSISTANT,
            content=PENDING_PLACEHOLDER,
            state=TurnState.PENDING,
        )
        self.turns.extend([user_turn, assistant])
        self._publish(user_turn)
        self._publish(assistant)

        logger.info(f"Submitting {self.mode.value} request to {self.endpoint} (turn {assistant.id})")

        task = loop.create_task(self._run(assistant, self.base_url, self.endpoint, payload))
        task.add_done_callback(partial(self._on_task_done, assistant.id))
        self._active = task
        return task

    async def send(self, prompt: str) -> ConversationTurn:
        """Submit prompt and wait for the assistant turn to settle."""
        return await self.submit(prompt)

    async def _run(
        self,
        turn: ConversationTurn,
        base_url: str,
        endpoint: str,
        payload: Dict[str, Any],
    ) -> ConversationTurn:
        started = time.perf_counter()
        try:
            result = await self.client.generate(base_url, endpoint, payload)
        except asyncio.CancelledError:
            self.settle_failure(turn.id, CancellationError(CANCELLED_NOTICE))
        except Exception as e:
            self.settle_failure(turn.id, e)
        else:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.settle_success(turn.id, result, elapsed_ms)
        return turn

    def _on_task_done(self, turn_id: str, task: asyncio.Task):
        # A task cancelled before its first step never enters _run
        if task.cancelled():
            self.settle_failure(turn_id, CancellationError(CANCELLED_NOTICE))
        if self._active is task:
            self._active = None

    def _settleable(self, turn_id: str) -> Optional[ConversationTurn]:
        turn = self.get_turn(turn_id)
        if turn is None:
            logger.debug(f"Ignoring settle for unknown turn {turn_id}")
            return None
        if turn.state.terminal:
            logger.debug(f"Ignoring settle for turn {turn_id}, already {turn.state.value}")
            return None
        return turn

    def settle_success(self, turn_id: str, result: GenerationResult, elapsed_ms: float) -> bool:
        """Complete a pending turn from a response. Returns False if it was already settled."""
        turn = self._settleable(turn_id)
        if turn is None:
            return False

        usage = extract_usage(result.raw)
        rate_tokens = usage.completion_tokens if usage.completion_tokens is not None else usage.total_tokens
        tokens_per_second = None
        if rate_tokens and elapsed_ms > 0:
            tokens_per_second = rate_tokens / (elapsed_ms / 1000)

        outputs = [split_reasoning(text) for text in result.texts]
        visible = [out.visible.strip() for out in outputs if out.visible.strip()]
        reasoning = [segment for out in outputs for segment in out.reasoning]

        if visible:
            content = "\n\n".join(visible)
        elif reasoning:
            content = HIDDEN_REASONING_ONLY
        else:
            content = NO_TEXT_RETURNED

        turn.state = TurnState.COMPLETE
        turn.content = content
        turn.reasoning = reasoning or None
        turn.raw = result.raw
        turn.duration_ms = max(elapsed_ms, 0.0)
        turn.prompt_tokens = usage.prompt_tokens
        turn.completion_tokens = usage.completion_tokens
        turn.total_tokens = usage.total_tokens
        turn.tokens_per_second = tokens_per_second
        turn.created_at = datetime.now()

        logger.info(f"Turn {turn.id} complete in {elapsed_ms:.0f} ms "
                    f"({len(result.texts)} texts, {len(reasoning)} reasoning segments)")
        self._flash(turn)
        self._publish(turn)
        return True

    def settle_failure(self, turn_id: str, error: BaseException) -> bool:
        """Cancel or error a pending turn. Returns False if it was already settled."""
        turn = self._settleable(turn_id)
        if turn is None:
            return False

        if isinstance(error, (CancellationError, asyncio.CancelledError)):
            turn.state = TurnState.CANCELLED
            turn.content = CANCELLED_NOTICE
            logger.info(f"Turn {turn.id} cancelled")
        else:
            turn.state = TurnState.ERRORED
            turn.content = str(error).strip() or UNKNOWN_ERROR
            if isinstance(error, TransportError):
                logger.warning(f"Turn {turn.id} failed: {turn.content}")
            else:
                logger.error(f"Turn {turn.id} failed with {type(error).__name__}: {turn.content}")
        turn.created_at = datetime.now()

        self._publish(turn)
        return True

    def cancel(self) -> bool:
        """
        Ask the active request to abort.

        The turn itself is settled by the request task once the abort lands,
        so a success that races the cancel is resolved by whichever settles
        first.
        """
        if not self.busy or self._active is None or self._active.done():
            return False
        logger.info("Cancelling active request")
        self._active.cancel()
        return True

    def clear(self):
        """Drop all turns, aborting any request in flight."""
        pending = self.pending
        if pending is not None:
            self.cancel()
            self.settle_failure(pending.id, CancellationError(CANCELLED_NOTICE))
        for handle in self._flash_timers.values():
            handle.cancel()
        self._flash_timers.clear()
        self.turns = []
        logger.info("Conversation cleared")

    # ------------------------------------------------------------------
    # Just-settled flag
    # ------------------------------------------------------------------

    def _flash(self, turn: ConversationTurn):
        turn.just_settled = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, just_settled on {turn.id} left for the caller")
            return
        self._flash_timers[turn.id] = loop.call_later(
            self.settle_flash_seconds, self._clear_flash, turn.id, turn
        )

    def _clear_flash(self, turn_id: str, turn: ConversationTurn):
        self._flash_timers.pop(turn_id, None)
        # The turn may have been cleared or replaced since the timer was set
        if self.get_turn(turn_id) is not turn or not turn.just_settled:
            return
        turn.just_settled = False
        logger.debug(f"Cleared just_settled on {turn_id}")
        self._publish(turn)

    # ------------------------------------------------------------------
    # Catalog and liveness
    # ------------------------------------------------------------------

    async def refresh_models(self) -> List[ModelDescriptor]:
        """
        Reload the model catalog for the active mode.

        Results are dropped if the mode changed while the listing was in
        flight. When no model is selected, the first listed one is chosen.
        """
        mode = self.mode
        path = model_list_path(mode)
        if not path:
            self.models = []
            return []

        try:
            models = await self.client.list_models(self.base_url, path)
        except TransportError:
            if self.mode == mode:
                self.models = []
            raise

        if self.mode != mode:
            logger.info(f"Discarding {mode.value} model list, mode is now {self.mode.value}")
            return self.models

        self.models = models
        if models and not self.params.model.strip():
            self.params = self.params.model_copy(update={"model": models[0].id})
            logger.info(f"Selected model {models[0].id}")
        return models

    async def probe(self) -> bool:
        """True if the backend answers the mode's probe path with 2xx."""
        status = await self.client.probe(self.base_url, probe_path(self.mode))
        logger.info(f"Probe {self.base_url}{probe_path(self.mode)} -> {status}")
        return 200 <= status < 300

    async def close(self):
        self.clear()
        await self.client.close()
