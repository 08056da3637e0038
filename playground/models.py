"""Data models for the playground."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Request / Response Models
# ============================================================================

class GenerationParameters(BaseModel):
    """Sampling options and prompts for one request."""
    max_tokens: int = Field(64, gt=0)
    temperature: float = Field(0.7, ge=0)
    top_p: float = Field(0.95, ge=0, le=1)
    # Raw generate only
    min_p: Optional[float] = Field(None, ge=0, le=1)
    repetition_penalty: Optional[float] = Field(None, ge=0)
    stop_sequences: List[str] = Field(default_factory=list)
    # Required for OpenAI-style modes
    model: str = ""
    system_prompt: str = ""
    user_prompt: str = ""

    @field_validator("stop_sequences")
    @classmethod
    def _non_empty_stops(cls, value: List[str]) -> List[str]:
        if any(not s for s in value):
            raise ValueError("stop sequences must be non-empty strings")
        return value


class ModelDescriptor(BaseModel):
    """One entry of a model listing."""
    id: str
    object: Optional[str] = None
    owned_by: Optional[str] = None


class UsageStats(BaseModel):
    """Best-effort token accounting for one response."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class GenerationResult:
    """Texts extracted from a response plus the untouched body."""
    texts: List[str]
    raw: Any


# ============================================================================
# Conversation State Models
# ============================================================================

class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnState(str, Enum):
    """Lifecycle of a turn. Everything except PENDING is terminal."""
    PENDING = "pending"
    COMPLETE = "complete"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self != TurnState.PENDING


@dataclass
class ConversationTurn:
    """One message in the conversation."""
    id: str
    role: Role
    content: str
    state: TurnState = TurnState.COMPLETE
    created_at: datetime = field(default_factory=datetime.now)
    raw: Any = None
    reasoning: Optional[List[str]] = None
    duration_ms: Optional[float] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    tokens_per_second: Optional[float] = None

    # Presentation hint, cleared shortly after settling
    just_settled: bool = False

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "reasoning": self.reasoning,
            "duration_ms": self.duration_ms,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "tokens_per_second": self.tokens_per_second,
            "just_settled": self.just_settled,
        }
        if include_raw:
            data["raw"] = self.raw
        return data
