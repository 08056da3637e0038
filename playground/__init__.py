"""
Text Generation Playground

Conversation client for three text generation wire protocols: a raw
/generate endpoint, OpenAI completions and OpenAI chat completions.

Components:
- modes: Backend modes and their default paths
- payloads: Mode-specific request bodies
- normalize: Text and usage extraction from any recognised response
- reasoning: <think> block separation
- catalog: Model listing normalisation
- client: Async HTTP transport
- session: Conversation turns and the in-flight request
- api / main: HTTP front end
"""

from .errors import CancellationError, PlaygroundError, TransportError, ValidationError
from .modes import Mode
from .session import ConversationSession

__version__ = "0.1.0"
