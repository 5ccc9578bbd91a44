"""Lifecycle state machine for quests, expeditions and organizations.

States::

    draft --request_publish--> published+unvalidated --approve--> published+validated
      |                          |      \\--reject--> (row deleted)
      |                          \\--withdraw--> draft
      \\-- archive / hard_delete available from every non-terminal state

``archived`` is terminal. Whether a removal archives or hard-deletes depends on
recorded learner progress.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from flask import current_app

from questgate.extensions import db
from questgate.models import ContentStatus, User
from questgate.services.errors import InvalidStateError, ValidationError
from questgate.services.payloads import clean_fields, require_draftable, require_publishable
from questgate.services.store import (
    close_pending_edit_requests,
    commit,
    parent_owner_id,
    progress_count,
    store_for,
)


class LifecycleState(Enum):
    DRAFT = "draft"
    PENDING = "published+unvalidated"
    LIVE = "published+validated"
    ARCHIVED = "archived"


# current state -> {trigger: resulting state}; None means the row is removed.
VALID_TRANSITIONS: dict[LifecycleState, dict[str, LifecycleState | None]] = {
    LifecycleState.DRAFT: {
        "request_publish": LifecycleState.PENDING,
        "archive": LifecycleState.ARCHIVED,
        "hard_delete": None,
    },
    LifecycleState.PENDING: {
        "approve": LifecycleState.LIVE,
        "reject": None,
        "withdraw": LifecycleState.DRAFT,
        "archive": LifecycleState.ARCHIVED,
        "hard_delete": None,
    },
    LifecycleState.LIVE: {
        "archive": LifecycleState.ARCHIVED,
        "hard_delete": None,
    },
    LifecycleState.ARCHIVED: {},
}


def state_of(entity: Any) -> LifecycleState:
    if entity.status == ContentStatus.ARCHIVED:
        return LifecycleState.ARCHIVED
    if entity.status == ContentStatus.DRAFT:
        return LifecycleState.DRAFT
    return LifecycleState.LIVE if entity.is_validated else LifecycleState.PENDING


def can_transition(state: LifecycleState, trigger: str) -> bool:
    return trigger in VALID_TRANSITIONS[state]


def validate_transition(entity: Any, trigger: str) -> LifecycleState:
    state = state_of(entity)
    if not can_transition(state, trigger):
        current_app.logger.warning(
            f"Refused {trigger} on {entity.KIND} {entity.id} in state {state.value}"
        )
        raise InvalidStateError(f"Cannot {trigger.replace('_', ' ')} a {entity.KIND} that is {state.value}")
    return state


def auto_validate(actor_id: str | None, parent_owner: str | None, actor_is_admin: bool) -> bool:
    """Admins and owners of the parent container skip the review queue."""
    if actor_is_admin:
        return True
    return actor_id is not None and parent_owner is not None and actor_id == parent_owner


AutoValidatePredicate = Callable[[str | None, str | None, bool], bool]


class LifecycleStateMachine:
    """Owns the status/is_validated columns of catalog entities."""

    def __init__(self, auto_validate_rule: AutoValidatePredicate = auto_validate):
        self.auto_validate = auto_validate_rule

    def _publish_flags(self, kind: str, values: dict[str, Any], actor: User) -> bool:
        owner = parent_owner_id(kind, values)
        return self.auto_validate(actor.id, owner, actor.is_admin)

    def create(self, kind: str, payload: dict[str, Any], target_status: str, actor: User) -> Any:
        """Insert a new entity as a draft or as a publish request."""
        values = clean_fields(kind, payload)
        status = _parse_target_status(target_status)

        if status == ContentStatus.PUBLISHED:
            require_publishable(kind, values)
            validated = self._publish_flags(kind, values, actor)
        else:
            require_draftable(kind, values)
            validated = False

        name_field = store_for(kind).model.NAME_FIELD
        values.setdefault(name_field, '')

        entity, error = store_for(kind).insert({
            **values,
            'created_by': actor.id,
            'status': status,
            'is_validated': validated,
        })
        if error:
            raise error

        current_app.logger.info(
            f"{actor.id} created {kind} {entity.id} as {state_of(entity).value}"
        )
        return entity

    def request_publish(self, entity: Any, actor: User) -> Any:
        validate_transition(entity, "request_publish")
        values = entity.live_fields()
        require_publishable(entity.KIND, values)

        entity.status = ContentStatus.PUBLISHED
        entity.is_validated = self._publish_flags(entity.KIND, values, actor)
        entity.rejection_reason = None
        commit(f"publish {entity.KIND}")
        return entity

    def withdraw(self, entity: Any) -> Any:
        """Pull a queued submission back to draft."""
        validate_transition(entity, "withdraw")
        entity.status = ContentStatus.DRAFT
        commit(f"withdraw {entity.KIND}")
        return entity

    def approve(self, entity: Any) -> bool:
        """Validate a queued submission. Returns False when already validated."""
        if state_of(entity) == LifecycleState.LIVE:
            return False
        validate_transition(entity, "approve")
        entity.is_validated = True
        entity.rejection_reason = None
        commit(f"approve {entity.KIND}")
        return True

    def reject(self, entity: Any, reason: str | None = None) -> None:
        """Reject a queued submission by deleting it; the reason is not kept."""
        validate_transition(entity, "reject")
        close_pending_edit_requests(entity.KIND, entity.id, f"The {entity.KIND} was rejected")
        db.session.delete(entity)
        commit(f"reject {entity.KIND}")

    def archive(self, entity: Any) -> Any:
        validate_transition(entity, "archive")
        if progress_count(entity) == 0:
            raise InvalidStateError(
                f"{entity.KIND.capitalize()} has no learner progress; delete it instead"
            )
        entity.status = ContentStatus.ARCHIVED
        entity.archived_at = datetime.now(timezone.utc)
        entity.draft_data = None
        entity.edit_reason = None
        commit(f"archive {entity.KIND}")
        return entity

    def hard_delete(self, entity: Any) -> None:
        validate_transition(entity, "hard_delete")
        if progress_count(entity) > 0:
            raise InvalidStateError(
                f"{entity.KIND.capitalize()} has learner progress; archive it instead"
            )
        close_pending_edit_requests(entity.KIND, entity.id, f"The {entity.KIND} was deleted")
        db.session.delete(entity)
        commit(f"delete {entity.KIND}")

    def remove(self, entity: Any) -> str:
        """Archive when learners have progress, otherwise delete the row."""
        if progress_count(entity) > 0:
            self.archive(entity)
            return "archived"
        self.hard_delete(entity)
        return "deleted"


def _parse_target_status(target_status: str | ContentStatus) -> ContentStatus:
    try:
        status = ContentStatus(target_status)
    except ValueError:
        raise ValidationError(f"Unknown target status: {target_status}", fields=['status']) from None
    if status == ContentStatus.ARCHIVED:
        raise ValidationError("New entities cannot be created archived", fields=['status'])
    return status


__all__ = [
    "LifecycleState",
    "LifecycleStateMachine",
    "VALID_TRANSITIONS",
    "auto_validate",
    "can_transition",
    "state_of",
    "validate_transition",
]
