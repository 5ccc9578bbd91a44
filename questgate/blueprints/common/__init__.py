"""Helpers shared by the JSON blueprints."""

from __future__ import annotations

from typing import Any

from flask import request

from questgate.models import CONTENT_MODELS
from questgate.services.errors import NotFoundError, ValidationError

# URL segment -> entity kind; both the plural and the bare kind are accepted.
KIND_SEGMENTS = {f"{kind}s": kind for kind in CONTENT_MODELS}
KIND_SEGMENTS.update({kind: kind for kind in CONTENT_MODELS})


def resolve_kind(segment: str) -> str:
    kind = KIND_SEGMENTS.get(segment)
    if kind is None:
        raise NotFoundError(f"Unknown content type: {segment}")
    return kind


def json_payload() -> dict[str, Any]:
    """Request body as a dict; an empty body reads as ``{}``."""
    if not request.data:
        return {}
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


__all__ = ["KIND_SEGMENTS", "resolve_kind", "json_payload"]
