"""Async HTTP client for text generation backends."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .catalog import parse_models
from .config import config
from .errors import TransportError, ValidationError
from .models import GenerationResult, ModelDescriptor
from .normalize import extract_texts

logger = logging.getLogger(__name__)

JSON_POST_HEADERS = {"Content-Type": "application/json"}
JSON_GET_HEADERS = {"Accept": "application/json"}


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and an endpoint path with exactly one slash."""
    if not base_url:
        raise ValidationError("API base URL is required.")
    base = base_url[:-1] if base_url.endswith("/") else base_url
    path = path if path.startswith("/") else f"/{path}"
    return f"{base}{path}"


def _failure_message(resp: httpx.Response, prefix: str) -> str:
    body = resp.text
    return f"{prefix} with {resp.status_code}: {body or resp.reason_phrase}"


class GenerationClient:
    """
    Async client for raw generate and OpenAI-style endpoints.

    Handles:
    - Generation calls (one JSON POST, whole response awaited)
    - Model listing
    - Liveness probes

    Cancellation is cooperative: cancelling the task awaiting a call
    aborts the underlying httpx request.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def generate(
        self,
        base_url: str,
        endpoint: str,
        payload: Dict[str, Any],
    ) -> GenerationResult:
        """
        POST a generation payload and normalise the response.

        Raises:
            TransportError: non-2xx status, network failure or a non-JSON body.
        """
        url = join_url(base_url, endpoint)
        logger.info(f"POST {url} ({len(payload)} fields)")

        try:
            resp = await self.client.post(url, json=payload, headers=JSON_POST_HEADERS)
        except httpx.HTTPError as e:
            logger.error(f"Generation request to {url} failed: {e}")
            raise TransportError(str(e) or type(e).__name__) from e

        if not resp.is_success:
            message = _failure_message(resp, "Request failed")
            logger.error(message)
            raise TransportError(message, status_code=resp.status_code)

        data = self._decode(resp)
        return GenerationResult(texts=extract_texts(data), raw=data)

    async def list_models(self, base_url: str, path: str) -> List[ModelDescriptor]:
        """Fetch and normalise a model listing."""
        url = join_url(base_url, path)
        try:
            resp = await self.client.get(url, headers=JSON_GET_HEADERS)
        except httpx.HTTPError as e:
            logger.error(f"Failed to list models: {e}")
            raise TransportError(str(e) or type(e).__name__) from e

        if not resp.is_success:
            message = _failure_message(resp, "Fetching models failed")
            logger.error(message)
            raise TransportError(message, status_code=resp.status_code)

        models = parse_models(self._decode(resp))
        logger.info(f"Listed {len(models)} models from {url}")
        return models

    async def probe(self, base_url: str, path: Optional[str] = None) -> int:
        """GET the probe target and return its status code."""
        target = join_url(base_url, path) if path else base_url
        try:
            resp = await self.client.get(target)
        except httpx.HTTPError as e:
            logger.warning(f"Probe of {target} failed: {e}")
            raise TransportError(str(e) or "Could not reach server.") from e
        return resp.status_code

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            logger.warning(f"Response from {resp.url} is not JSON: {resp.text[:100]}")
            raise TransportError(f"Invalid JSON in response from {resp.url}") from e
