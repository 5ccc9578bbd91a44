"""Shadow drafts: owner edits to live content held back until an admin approves."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from flask import current_app

from questgate.services.errors import InvalidStateError, ValidationError
from questgate.services.lifecycle import LifecycleState, state_of
from questgate.services.payloads import clean_fields
from questgate.services.store import commit

# Keys stored alongside the shadowed fields that never reach the live row.
META_FIELDS = ('edit_reason', 'updated_at')


@dataclass(frozen=True)
class FieldChange:
    field: str
    before: Any
    after: Any
    changed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            'field': self.field,
            'before': self.before,
            'after': self.after,
            'changed': self.changed,
        }


def _shadowed_items(entity: Any) -> list[tuple[str, Any]]:
    """Known, non-meta keys of the draft; unknown keys are ignored."""
    draft = entity.draft_data or {}
    return [
        (field, draft[field])
        for field in entity.EDITABLE_FIELDS
        if field in draft and field not in META_FIELDS
    ]


class ShadowDraftManager:

    def save_edit(self, entity: Any, fields: dict[str, Any], reason: str | None) -> Any:
        """Store ``fields`` as the pending draft of a live, validated entity.

        Overwrites any previous draft wholesale (last write wins).
        """
        if state_of(entity) != LifecycleState.LIVE:
            raise InvalidStateError(
                f"Only published, validated {entity.KIND}s take shadow edits; edit it directly"
            )
        if not reason or not reason.strip():
            raise ValidationError("An edit reason is required", fields=['edit_reason'])

        cleaned = clean_fields(entity.KIND, fields)
        if not cleaned:
            raise ValidationError("No editable fields were supplied")

        entity.draft_data = {
            **cleaned,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }
        entity.edit_reason = reason.strip()
        entity.rejection_reason = None
        commit(f"save draft for {entity.KIND}")
        return entity

    def load_for_editing(self, entity: Any) -> dict[str, Any]:
        """Live fields with the pending draft, if any, laid over them."""
        values = entity.live_fields()
        values.update(_shadowed_items(entity))
        return values

    def diff(self, entity: Any) -> list[FieldChange]:
        changes = []
        for field, after in _shadowed_items(entity):
            before = getattr(entity, field)
            changes.append(FieldChange(field=field, before=before, after=after, changed=after != before))
        return changes

    def changed_fields(self, entity: Any) -> list[FieldChange]:
        return [change for change in self.diff(entity) if change.changed]

    def approve(self, entity: Any) -> bool:
        """Copy the draft into the live row. Returns False when there is no draft."""
        if entity.draft_data is None:
            return False

        for field, value in _shadowed_items(entity):
            setattr(entity, field, value)
        entity.version += 1
        entity.draft_data = None
        entity.edit_reason = None
        entity.rejection_reason = None
        commit(f"apply draft to {entity.KIND}")

        current_app.logger.info(f"Applied shadow draft to {entity.KIND} {entity.id} (v{entity.version})")
        return True

    def reject(self, entity: Any, reason: str | None) -> bool:
        """Discard the draft and record why. Returns False when there is no draft."""
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", fields=['rejection_reason'])
        if entity.draft_data is None:
            return False

        entity.draft_data = None
        entity.edit_reason = None
        entity.rejection_reason = reason.strip()
        commit(f"reject draft for {entity.KIND}")
        return True


__all__ = ["ShadowDraftManager", "FieldChange", "META_FIELDS"]
