"""Normalisation of model listing responses."""

import logging
from typing import Any, List, Optional

from .models import ModelDescriptor

logger = logging.getLogger(__name__)


def _from_record(item: Any) -> Optional[ModelDescriptor]:
    if not isinstance(item, dict):
        return None
    model_id = item.get("id")
    if not isinstance(model_id, str) or not model_id:
        return None
    return ModelDescriptor(
        id=model_id,
        object=item["object"] if isinstance(item.get("object"), str) else None,
        owned_by=item["owned_by"] if isinstance(item.get("owned_by"), str) else None,
    )


def _from_entry(item: Any) -> Optional[ModelDescriptor]:
    if isinstance(item, str) and item:
        return ModelDescriptor(id=item)
    return _from_record(item)


def parse_models(payload: Any) -> List[ModelDescriptor]:
    """
    Extract model descriptors from a listing response.

    Handles OpenAI style {"data": [...]}, {"models": [...]} with string or
    object entries, and a bare list of ids. Only the first matching shape
    is read.
    """
    if isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            return [m for m in map(_from_record, payload["data"]) if m]
        if isinstance(payload.get("models"), list):
            return [m for m in map(_from_entry, payload["models"]) if m]
        logger.debug("Model listing has neither 'data' nor 'models'")
        return []

    if isinstance(payload, list):
        # Bare strings only; objects here are not recognised
        return [ModelDescriptor(id=item) for item in payload if isinstance(item, str) and item]

    return []
