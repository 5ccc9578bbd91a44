"""Field payload cleaning and publish/draft requirements per entity kind."""

from __future__ import annotations

from typing import Any, Mapping

from questgate.models import CONTENT_MODELS, Expedition, Organization, Quest
from questgate.services.errors import ValidationError

INTEGER_FIELDS = {'xp_reward', 'order_index'}
MAX_LENGTHS = {
    'title': 255,
    'name': 255,
    'summary': 500,
    'thumbnail_url': 512,
    'website_url': 512,
    'link_url': 1000,
}

# Fields that must be filled before an entity may leave draft.
PUBLISH_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    Quest.KIND: ('title', 'summary', 'description', 'thumbnail_url'),
    Expedition.KIND: ('title', 'summary', 'description', 'thumbnail_url', 'organization_id'),
    Organization.KIND: ('name', 'description'),
}


def editable_fields(kind: str) -> tuple[str, ...]:
    model = CONTENT_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown entity kind: {kind}")
    return model.EDITABLE_FIELDS


def clean_fields(kind: str, fields: Mapping[str, Any] | None) -> dict[str, Any]:
    """Reduce a partial payload to the known fields of ``kind``.

    Unknown keys are dropped silently. Only keys that are present get checked,
    so the result is still a sparse update.
    """
    allowed = editable_fields(kind)
    cleaned: dict[str, Any] = {}
    invalid: list[str] = []

    for key, value in (fields or {}).items():
        if key not in allowed:
            continue

        if key in INTEGER_FIELDS:
            if value is None or value == '':
                value = 0
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                invalid.append(key)
                continue
            try:
                value = int(value)
            except (TypeError, ValueError):
                invalid.append(key)
                continue
            if value < 0:
                invalid.append(key)
                continue
        elif isinstance(value, str):
            value = value.strip()
            limit = MAX_LENGTHS.get(key)
            if limit and len(value) > limit:
                invalid.append(key)
                continue
            if value == '' and key != CONTENT_MODELS[kind].NAME_FIELD:
                value = None
        elif value is not None:
            invalid.append(key)
            continue

        cleaned[key] = value

    if invalid:
        raise ValidationError(f"Invalid value for: {', '.join(invalid)}", fields=invalid)
    return cleaned


def missing_for_publish(kind: str, values: Mapping[str, Any]) -> list[str]:
    missing = [field for field in PUBLISH_REQUIREMENTS[kind] if not values.get(field)]
    if kind == Quest.KIND:
        if not (values.get('expedition_id') or values.get('organization_id')):
            missing.append('expedition_id')
        if not values.get('xp_reward') or values['xp_reward'] <= 0:
            missing.append('xp_reward')
    return missing


def require_publishable(kind: str, values: Mapping[str, Any]) -> None:
    missing = missing_for_publish(kind, values)
    if missing:
        raise ValidationError(
            "To publish, all fields must be filled and the XP reward must be greater than 0",
            fields=missing,
        )


def require_draftable(kind: str, values: Mapping[str, Any]) -> None:
    name_field = CONTENT_MODELS[kind].NAME_FIELD
    if values.get(name_field) or values.get('link_url'):
        return
    raise ValidationError(
        f"Drafts require at least a {name_field.capitalize()} or a Link",
        fields=[name_field],
    )


__all__ = [
    "PUBLISH_REQUIREMENTS",
    "editable_fields",
    "clean_fields",
    "missing_for_publish",
    "require_publishable",
    "require_draftable",
]
