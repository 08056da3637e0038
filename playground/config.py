"""Playground configuration."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .payloads import parse_stop_sequences


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("PLAYGROUND_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PLAYGROUND_PORT", "8080")))

    # Upstream
    api_base: str = field(default_factory=lambda: os.getenv("PLAYGROUND_API_BASE", "http://127.0.0.1:8000"))
    mode: str = field(default_factory=lambda: os.getenv("PLAYGROUND_MODE", "openai-chat"))
    endpoint: str = field(default_factory=lambda: os.getenv("PLAYGROUND_ENDPOINT", "").strip())
    model: str = field(default_factory=lambda: os.getenv("PLAYGROUND_MODEL", "").strip())
    timeout: float = field(default_factory=lambda: float(os.getenv("PLAYGROUND_TIMEOUT", "300")))
    connect_timeout: float = field(default_factory=lambda: float(os.getenv("PLAYGROUND_CONNECT_TIMEOUT", "10")))

    # Sampling
    max_tokens: int = field(default_factory=lambda: int(os.getenv("PLAYGROUND_MAX_TOKENS", "64")))
    temperature: float = field(default_factory=lambda: float(os.getenv("PLAYGROUND_TEMPERATURE", "0.7")))
    top_p: float = field(default_factory=lambda: float(os.getenv("PLAYGROUND_TOP_P", "0.95")))
    min_p: Optional[float] = field(default_factory=lambda: _optional_float("PLAYGROUND_MIN_P"))
    repetition_penalty: Optional[float] = field(
        default_factory=lambda: _optional_float("PLAYGROUND_REPETITION_PENALTY"))
    stop_sequences: List[str] = field(default_factory=lambda: parse_stop_sequences(os.getenv("PLAYGROUND_STOP", "")))
    system_prompt: str = field(default_factory=lambda: os.getenv("PLAYGROUND_SYSTEM_PROMPT", ""))

    # Presentation
    settle_flash_ms: float = field(default_factory=lambda: float(os.getenv("PLAYGROUND_SETTLE_FLASH_MS", "800")))

    @property
    def settle_flash_seconds(self) -> float:
        return self.settle_flash_ms / 1000.0


# Global config instance
config = Config()
