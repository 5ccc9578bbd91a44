"""JSON serializers for catalog entities and workflow records."""

from __future__ import annotations

from typing import Any

from questgate.models import EditRequest, Mission
from questgate.services.lifecycle import state_of
from questgate.services.store import organization_ref


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def serialize_entity(entity: Any, include_draft: bool = False) -> dict:
    data = {
        'id': entity.id,
        'kind': entity.KIND,
        'name': entity.display_name,
        'state': state_of(entity).value,
        'status': entity.status.value,
        'is_validated': entity.is_validated,
        'created_by': entity.created_by,
        'version': entity.version,
        'row_version': entity.row_version,
        'created_at': _iso(entity.created_at),
        'updated_at': _iso(entity.updated_at),
        'archived_at': _iso(entity.archived_at),
    }
    data.update(entity.live_fields())

    organization = organization_ref(entity)
    data['organization'] = organization.to_dict() if organization else None

    if include_draft:
        data['has_draft'] = entity.has_shadow_draft
        data['draft_data'] = entity.draft_data
        data['edit_reason'] = entity.edit_reason
        data['rejection_reason'] = entity.rejection_reason
    return data


def serialize_mission(mission: Mission) -> dict:
    return {
        'id': mission.id,
        'quest_id': mission.quest_id,
        'title': mission.title,
        'description': mission.description,
        'requirements': mission.requirements,
        'order_index': mission.order_index,
    }


def serialize_edit_request(edit_request: EditRequest) -> dict:
    return {
        'id': edit_request.id,
        'resource_type': edit_request.resource_type,
        'resource_id': edit_request.resource_id,
        'user_id': edit_request.user_id,
        'proposer': edit_request.proposer.username or edit_request.proposer.email if edit_request.proposer else None,
        'data': edit_request.data,
        'reason': edit_request.reason,
        'status': edit_request.status.value,
        'rejection_reason': edit_request.rejection_reason,
        'reviewed_by_id': edit_request.reviewed_by_id,
        'reviewed_at': _iso(edit_request.reviewed_at),
        'created_at': _iso(edit_request.created_at),
    }


__all__ = ["serialize_entity", "serialize_mission", "serialize_edit_request"]
