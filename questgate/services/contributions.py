"""Contributor-side operations: create, publish, edit and remove catalog content."""

from __future__ import annotations

from typing import Any

from flask import current_app

from questgate.models import Mission, Quest, User
from questgate.services.cache import ADMIN, QUESTS, CacheInvalidator, get_cache
from questgate.services.edit_requests import EditRequestManager
from questgate.services.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from questgate.services.lifecycle import LifecycleState, LifecycleStateMachine, state_of
from questgate.services.payloads import clean_fields, require_draftable, require_publishable
from questgate.services.shadow_draft import ShadowDraftManager
from questgate.services.store import commit, store_for

# Keys of a save payload that are not entity fields.
SAVE_CONTROL_KEYS = {'status', 'edit_reason', 'row_version', 'fields'}


def visible(entity: Any, actor: Any) -> bool:
    """Live content is public; everything else only reaches its owner and admins."""
    if state_of(entity) == LifecycleState.LIVE:
        return True
    if actor is None or not getattr(actor, 'is_authenticated', False):
        return False
    return actor.is_admin or entity.created_by == actor.id


def _fields_from(payload: dict[str, Any]) -> dict[str, Any]:
    fields = payload.get('fields')
    if fields is None:
        fields = {k: v for k, v in payload.items() if k not in SAVE_CONTROL_KEYS}
    return fields


class ContributionService:

    def __init__(
        self,
        lifecycle: LifecycleStateMachine | None = None,
        drafts: ShadowDraftManager | None = None,
        edit_requests: EditRequestManager | None = None,
        cache: CacheInvalidator | None = None,
    ):
        self.lifecycle = lifecycle or LifecycleStateMachine()
        self.drafts = drafts or ShadowDraftManager()
        self.edit_requests = edit_requests or EditRequestManager()
        self._cache = cache

    @property
    def cache(self) -> CacheInvalidator:
        return self._cache or get_cache()

    def get(self, kind: str, entity_id: str, actor: Any) -> Any:
        """Load an entity the actor is allowed to see; hidden rows read as missing."""
        entity = store_for(kind).require(entity_id)
        if not visible(entity, actor):
            raise NotFoundError(f"{kind.capitalize()} {entity_id} not found")
        return entity

    def _require_owner(self, entity: Any, actor: User) -> None:
        if actor.is_admin or entity.created_by == actor.id:
            return
        raise PermissionDeniedError(
            f"Only the owner can edit this {entity.KIND}; submit an edit request instead"
        )

    def _load_for_write(self, kind: str, entity_id: str, actor: User, row_version: Any = None) -> Any:
        store = store_for(kind)
        entity = self.get(kind, entity_id, actor)
        self._require_owner(entity, actor)
        conflict = store.check_version(entity, row_version)
        if conflict:
            raise conflict
        return entity

    def create_entity(self, kind: str, payload: dict[str, Any], actor: User) -> Any:
        target_status = payload.get('status') or 'draft'
        entity = self.lifecycle.create(kind, _fields_from(payload), target_status, actor)
        self.cache.invalidate_kind(kind)
        return entity

    def request_publish(self, kind: str, entity_id: str, actor: User, row_version: Any = None) -> Any:
        entity = self._load_for_write(kind, entity_id, actor, row_version)
        self.lifecycle.request_publish(entity, actor)
        self.cache.invalidate_kind(kind)
        return entity

    def save(self, kind: str, entity_id: str, payload: dict[str, Any], actor: User) -> tuple[Any, str]:
        """Save an owner's edit.

        Drafts and queued submissions are written in place; validated content
        gets a shadow draft instead. Returns the entity and what happened:
        ``saved``, ``published``, ``withdrawn`` or ``draft_saved``.
        """
        entity = self._load_for_write(kind, entity_id, actor, payload.get('row_version'))

        if not actor.is_admin and self.edit_requests.has_pending(kind, entity.id):
            raise InvalidStateError(
                f"This {kind} has an edit request awaiting review; wait for it to be decided"
            )

        state = state_of(entity)
        if state == LifecycleState.LIVE:
            self.save_shadow_edit(kind, entity_id, _fields_from(payload), payload.get('edit_reason'), actor)
            return entity, 'draft_saved'
        if state == LifecycleState.ARCHIVED:
            raise InvalidStateError(f"Archived {kind}s cannot be edited")

        fields = clean_fields(kind, _fields_from(payload))
        merged = {**entity.live_fields(), **fields}
        target = payload.get('status')

        if state == LifecycleState.DRAFT and target == 'published':
            require_publishable(kind, merged)
            self._apply(entity, fields)
            self.lifecycle.request_publish(entity, actor)
            outcome = 'published'
        elif state == LifecycleState.PENDING and target == 'draft':
            self._apply(entity, fields)
            self.lifecycle.withdraw(entity)
            outcome = 'withdrawn'
        else:
            if state == LifecycleState.PENDING:
                require_publishable(kind, merged)
            else:
                require_draftable(kind, merged)
            self._apply(entity, fields)
            commit(f"save {kind}")
            outcome = 'saved'

        self.cache.invalidate_kind(kind)
        current_app.logger.info(f"{actor.id} {outcome} {kind} {entity.id}")
        return entity, outcome

    @staticmethod
    def _apply(entity: Any, fields: dict[str, Any]) -> None:
        for key, value in fields.items():
            setattr(entity, key, value)

    def save_shadow_edit(
        self,
        kind: str,
        entity_id: str,
        fields: dict[str, Any],
        reason: str | None,
        actor: User,
    ) -> Any:
        entity = self._load_for_write(kind, entity_id, actor)
        self.drafts.save_edit(entity, fields, reason)
        self.cache.invalidate(ADMIN)
        current_app.logger.info(f"{actor.id} saved a shadow draft for {kind} {entity.id}")
        return entity

    def submit_edit_request(
        self,
        kind: str,
        entity_id: str,
        fields: dict[str, Any],
        reason: str | None,
        actor: User,
    ):
        entity = self.get(kind, entity_id, actor)
        request = self.edit_requests.submit(kind, entity.id, actor.id, fields, reason)
        self.cache.invalidate(ADMIN)
        return request

    def load_for_editing(self, kind: str, entity_id: str, actor: User) -> dict[str, Any]:
        entity = self.get(kind, entity_id, actor)
        self._require_owner(entity, actor)
        return {
            'id': entity.id,
            'kind': kind,
            'state': state_of(entity).value,
            'fields': self.drafts.load_for_editing(entity),
            'has_draft': entity.has_shadow_draft,
            'edit_reason': entity.edit_reason,
            'rejection_reason': entity.rejection_reason,
            'version': entity.version,
            'row_version': entity.row_version,
            'has_pending_edit_request': self.edit_requests.has_pending(kind, entity.id),
        }

    def remove(self, kind: str, entity_id: str, actor: User, row_version: Any = None) -> str:
        """Archive when learners have progress, otherwise delete."""
        entity = self._load_for_write(kind, entity_id, actor, row_version)
        outcome = self.lifecycle.remove(entity)
        self.cache.invalidate_kind(kind)
        current_app.logger.info(f"{actor.id} {outcome} {kind} {entity_id}")
        return outcome

    def replace_missions(self, quest_id: str, missions: list[dict[str, Any]] | None, actor: User) -> list[Mission]:
        """Replace a quest's missions with the submitted list, live.

        Listed ids that belong to the quest are updated, unknown ones are
        created, and missions missing from the list are deleted. List order
        becomes ``order_index``.
        """
        quest: Quest = self._load_for_write(Quest.KIND, quest_id, actor)
        if missions is None or not isinstance(missions, list):
            raise ValidationError("missions must be a list", fields=['missions'])

        cleaned = []
        invalid = []
        for index, item in enumerate(missions):
            title = (item.get('title') or '').strip() if isinstance(item, dict) else ''
            if not title:
                invalid.append(f"missions[{index}].title")
                continue
            cleaned.append({
                'id': item.get('id'),
                'title': title,
                'description': (item.get('description') or '').strip() or None,
                'requirements': (item.get('requirements') or '').strip() or None,
                'order_index': index,
            })
        if invalid:
            raise ValidationError("Every mission needs a title", fields=invalid)

        existing = {mission.id: mission for mission in quest.missions}
        keep = {item['id'] for item in cleaned if item['id'] in existing}
        for mission_id, mission in existing.items():
            if mission_id not in keep:
                quest.missions.remove(mission)

        for item in cleaned:
            mission = existing.get(item.pop('id'))
            if mission is None:
                quest.missions.append(Mission(**item))
            else:
                for key, value in item.items():
                    setattr(mission, key, value)

        commit("save missions")
        self.cache.invalidate(QUESTS)
        current_app.logger.info(f"{actor.id} replaced missions of quest {quest.id} ({len(cleaned)} total)")
        return sorted(quest.missions, key=lambda m: m.order_index)


__all__ = ["ContributionService", "visible"]
