"""Admin decision dispatch for pending submissions, shadow drafts and edit requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from questgate.models import ContentStatus, EditRequestStatus, User
from questgate.services import similarity
from questgate.services.audit import log_admin_action
from questgate.services.cache import ADMIN, KIND_TAGS, CacheInvalidator, get_cache
from questgate.services.edit_requests import EditRequestManager
from questgate.services.errors import InvalidStateError, NotFoundError, ValidationError
from questgate.services.lifecycle import LifecycleState, LifecycleStateMachine, state_of
from questgate.services.notifications import notify
from questgate.services.payloads import clean_fields, require_publishable
from questgate.services.shadow_draft import FieldChange, ShadowDraftManager
from questgate.services.store import edit_request_store, store_for, validated_names

EDIT_REQUEST_KIND = 'edit_request'
ACTIONS = ('approve', 'reject', 'update', 'merge')

# Payload keys that steer the action rather than carry field values.
CONTROL_KEYS = {'action', 'rejection_reason', 'targetId', 'target_id', 'row_version', 'fields'}


@dataclass
class Decision:
    kind: str
    entity_id: str
    action: str
    outcome: str
    entity: Any = None
    target_id: str | None = None

    @property
    def changed(self) -> bool:
        return self.outcome != 'noop'

    def to_dict(self) -> dict[str, Any]:
        payload = {
            'success': True,
            'kind': self.kind,
            'id': self.entity_id,
            'action': self.action,
            'outcome': self.outcome,
        }
        if self.target_id:
            payload['target_id'] = self.target_id
        if self.entity is not None and hasattr(self.entity, 'version'):
            payload['version'] = self.entity.version
        return payload


@dataclass
class PendingSubmission:
    entity: Any
    suggestions: list[similarity.Match] = field(default_factory=list)


@dataclass
class PendingDraft:
    entity: Any
    changes: list[FieldChange] = field(default_factory=list)


class ValidationOrchestrator:
    """Single entry point behind the admin validation endpoints."""

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

    # ------------------------------------------------------------------ actions

    def decide(
        self,
        kind: str,
        entity_id: str,
        action: str,
        payload: dict[str, Any] | None,
        actor: User,
    ) -> Decision:
        payload = payload or {}
        if action not in ACTIONS:
            raise ValidationError(f"Invalid action: {action}", fields=['action'])

        if kind == EDIT_REQUEST_KIND:
            decision = self._decide_edit_request(entity_id, action, payload, actor)
        else:
            handler = getattr(self, f"_{action}")
            decision = handler(kind, entity_id, payload)

        if decision.changed:
            self._after_commit(decision, actor, payload)
        else:
            current_app.logger.info(f"{action} on {kind} {entity_id} was a no-op")
        return decision

    def _load(self, kind: str, entity_id: str, payload: dict[str, Any], missing_ok: bool):
        store = store_for(kind)
        entity, error = store.get(entity_id)
        if isinstance(error, NotFoundError) and missing_ok:
            return None
        if error:
            raise error
        conflict = store.check_version(entity, payload.get('row_version'))
        if conflict:
            raise conflict
        return entity

    def _approve(self, kind: str, entity_id: str, payload: dict[str, Any]) -> Decision:
        entity = self._load(kind, entity_id, payload, missing_ok=True)
        if entity is None:
            return Decision(kind, entity_id, 'approve', 'noop')

        owner, name = entity.created_by, entity.display_name
        if entity.draft_data is not None:
            outcome = 'draft_approved' if self.drafts.approve(entity) else 'noop'
        else:
            outcome = 'approved' if self.lifecycle.approve(entity) else 'noop'
        return Decision(kind, entity_id, 'approve', outcome, entity=_Snapshot.of(entity, owner, name))

    def _reject(self, kind: str, entity_id: str, payload: dict[str, Any]) -> Decision:
        entity = self._load(kind, entity_id, payload, missing_ok=True)
        if entity is None:
            return Decision(kind, entity_id, 'reject', 'noop')

        owner, name = entity.created_by, entity.display_name
        if entity.draft_data is not None:
            self.drafts.reject(entity, payload.get('rejection_reason'))
            outcome = 'draft_rejected'
        elif state_of(entity) == LifecycleState.LIVE:
            # The draft was already decided by an earlier click.
            outcome = 'noop'
        else:
            self.lifecycle.reject(entity, payload.get('rejection_reason'))
            outcome = 'rejected'
            entity = None
        return Decision(kind, entity_id, 'reject', outcome, entity=_Snapshot.of(entity, owner, name))

    def _update(self, kind: str, entity_id: str, payload: dict[str, Any]) -> Decision:
        entity = self._load(kind, entity_id, payload, missing_ok=False)

        raw_fields = payload.get('fields')
        if raw_fields is None:
            raw_fields = {k: v for k, v in payload.items() if k not in CONTROL_KEYS}
        fields = clean_fields(kind, raw_fields)

        state = state_of(entity)
        if state == LifecycleState.LIVE:
            if all(getattr(entity, key) == value for key, value in fields.items()):
                return Decision(kind, entity_id, 'update', 'noop', entity=entity)
            raise InvalidStateError(
                f"{kind.capitalize()} is already live; owners edit it through a shadow draft"
            )
        if state != LifecycleState.PENDING:
            raise InvalidStateError(f"Only pending submissions can be updated, this {kind} is {state.value}")

        require_publishable(kind, {**entity.live_fields(), **fields})
        for key, value in fields.items():
            setattr(entity, key, value)
        self.lifecycle.approve(entity)
        return Decision(kind, entity_id, 'update', 'updated', entity=_Snapshot.of(entity))

    def _merge(self, kind: str, entity_id: str, payload: dict[str, Any]) -> Decision:
        target_id = payload.get('targetId') or payload.get('target_id')
        if not target_id:
            raise ValidationError("Merge target is required", fields=['targetId'])

        source = self._load(kind, entity_id, payload, missing_ok=False)
        owner, name = source.created_by, source.display_name
        target = similarity.merge(source, target_id)
        return Decision(
            kind,
            entity_id,
            'merge',
            'merged',
            entity=_Snapshot(owner=owner, name=name, target_name=target.display_name),
            target_id=target.id,
        )

    def _decide_edit_request(
        self,
        request_id: str,
        action: str,
        payload: dict[str, Any],
        actor: User,
    ) -> Decision:
        if action not in ('approve', 'reject'):
            raise ValidationError(f"Edit requests cannot be handled with {action}", fields=['action'])

        existing, error = edit_request_store.get(request_id)
        if isinstance(error, NotFoundError):
            return Decision(EDIT_REQUEST_KIND, request_id, action, 'noop')
        if error:
            raise error
        was_pending = existing.status == EditRequestStatus.PENDING

        if action == 'approve':
            request = self.edit_requests.approve(request_id, reviewer=actor)
        else:
            request = self.edit_requests.reject(
                request_id,
                reason=payload.get('rejection_reason'),
                reviewer=actor,
            )

        if request is None or not was_pending:
            return Decision(EDIT_REQUEST_KIND, request_id, action, 'noop', entity=request)
        # An approval can end as a rejection when the target row is gone
        return Decision(EDIT_REQUEST_KIND, request_id, action, request.status.value, entity=request)

    def discard_edit_request(self, request_id: str, actor: User) -> bool:
        deleted = self.edit_requests.discard(request_id)
        if deleted:
            self.cache.invalidate(ADMIN)
            log_admin_action(actor, 'edit_request_deleted', EDIT_REQUEST_KIND, request_id)
        return deleted

    # ------------------------------------------------------------- side effects

    def _after_commit(self, decision: Decision, actor: User, payload: dict[str, Any]) -> None:
        if decision.kind == EDIT_REQUEST_KIND:
            request = decision.entity
            self.cache.invalidate(ADMIN, *KIND_TAGS.values())
            log_admin_action(
                actor,
                f"edit_request_{decision.outcome}",
                EDIT_REQUEST_KIND,
                decision.entity_id,
                metadata={'resource_type': request.resource_type, 'resource_id': request.resource_id},
            )
            self._notify_edit_request(request, actor)
        else:
            self.cache.invalidate_kind(decision.kind)
            metadata: dict[str, Any] = {'outcome': decision.outcome}
            if decision.target_id:
                metadata['target_id'] = decision.target_id
            if payload.get('rejection_reason'):
                metadata['rejection_reason'] = payload['rejection_reason']
            log_admin_action(
                actor,
                f"{decision.kind}_{decision.outcome}",
                decision.kind,
                decision.entity_id,
                metadata=metadata,
            )
            self._notify_owner(decision, actor, payload)

        current_app.logger.info(
            f"Admin {actor.id} {decision.outcome} {decision.kind} {decision.entity_id}"
        )

    def _notify_owner(self, decision: Decision, actor: User, payload: dict[str, Any]) -> None:
        snapshot = decision.entity
        if snapshot is None or snapshot.owner is None or snapshot.owner == actor.id:
            return

        label = f'{decision.kind} "{snapshot.name}"'
        messages = {
            'approved': ("Submission approved", f"Your {label} is now live."),
            'updated': ("Submission approved", f"Your {label} was adjusted by an admin and is now live."),
            'draft_approved': ("Edit approved", f"Your changes to {label} are now live."),
            'rejected': ("Submission rejected", f"Your {label} was not accepted."),
            'draft_rejected': (
                "Edit rejected",
                f"Your changes to {label} were rejected: {payload.get('rejection_reason', '').strip()}",
            ),
            'merged': (
                "Submission merged",
                f'Your {label} duplicated "{snapshot.target_name}" and was merged into it.',
            ),
        }
        title, message = messages[decision.outcome]
        link = None
        if decision.outcome not in ('rejected', 'merged'):
            link = f"/api/{decision.kind}s/{decision.entity_id}"
        notify(snapshot.owner, title, message, f"{decision.kind}_{decision.outcome}", link)

    def _notify_edit_request(self, request: Any, actor: User) -> None:
        if request.user_id == actor.id:
            return
        if request.status.value == 'approved':
            title, message = "Edit request approved", "Your proposed changes have been applied."
        else:
            title = "Edit request rejected"
            message = "Your proposed changes were not applied."
            if request.rejection_reason:
                message = f"{message} Reason: {request.rejection_reason}"
        notify(
            request.user_id,
            title,
            message,
            f"edit_request_{request.status.value}",
            f"/api/{request.resource_type}s/{request.resource_id}",
        )

    # -------------------------------------------------------------------- reads

    def pending_submissions(self, kind: str) -> list[PendingSubmission]:
        """New submissions waiting for review, with likely duplicates attached."""
        entities, error = store_for(kind).list(status=ContentStatus.PUBLISHED, is_validated=False)
        if error:
            raise error

        pool = validated_names(kind)
        config = current_app.config
        pending = []
        for entity in entities:
            candidates = [(pid, name) for pid, name in pool if pid != entity.id]
            pending.append(PendingSubmission(
                entity=entity,
                suggestions=similarity.suggest(
                    entity.display_name,
                    candidates,
                    threshold=config.get('SIMILARITY_THRESHOLD', 0.5),
                    top_k=config.get('SIMILARITY_TOP_K', 3),
                    high_confidence=config.get('SIMILARITY_HIGH_CONFIDENCE', similarity.HIGH_CONFIDENCE),
                ),
            ))
        return pending

    def pending_drafts(self, kind: str) -> list[PendingDraft]:
        entities, error = store_for(kind).list(has_draft=True)
        if error:
            raise error
        return [PendingDraft(entity=entity, changes=self.drafts.diff(entity)) for entity in entities]

    def pending_edit_requests(self):
        return self.edit_requests.list_pending()

    def validated_names(self, kind: str) -> list[tuple[str, str]]:
        return validated_names(kind)


@dataclass
class _Snapshot:
    """What the side effects need once the row itself may be gone."""

    owner: str | None
    name: str
    target_name: str | None = None
    version: int | None = None

    @classmethod
    def of(cls, entity: Any, owner: str | None = None, name: str | None = None) -> "_Snapshot":
        if entity is None:
            return cls(owner=owner, name=name or "")
        return cls(
            owner=owner or entity.created_by,
            name=name or entity.display_name,
            version=entity.version,
        )


__all__ = [
    "ValidationOrchestrator",
    "Decision",
    "PendingSubmission",
    "PendingDraft",
    "ACTIONS",
    "EDIT_REQUEST_KIND",
]
