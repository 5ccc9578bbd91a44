"""Entity store adapter: typed access to catalog rows and edit requests.

Every public read/write call returns a ``(data, error)`` pair in the same way
the services always have; the workflow managers use :meth:`EntityStore.require`
and :func:`commit`, which raise instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Type, TypeVar

from flask import current_app
from sqlalchemy import false, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from questgate.extensions import db
from questgate.models import (
    CONTENT_MODELS,
    ContentStatus,
    EditRequest,
    EditRequestStatus,
    Expedition,
    Organization,
    Quest,
    QuestProgress,
)
from questgate.services.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
    WorkflowError,
)

Model = TypeVar("Model", bound=db.Model)

PROTECTED_FIELDS = ('id', 'created_at', 'updated_at', 'row_version', 'created_by')


@dataclass(frozen=True)
class OrganizationRef:
    """Single optional organization association for any catalog entity."""

    id: str
    name: str
    is_validated: bool

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'is_validated': self.is_validated}


def commit(description: str) -> None:
    """Commit the session, translating persistence failures.

    The session is always rolled back before the error propagates so the
    caller never sees a half-applied decision.
    """
    try:
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        current_app.logger.warning(f"Concurrent modification during {description}: {e}")
        raise ConflictError(
            f"{description} conflicted with a concurrent change; reload and try again"
        ) from e
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.error(f"Integrity error during {description}: {e}")
        raise StoreError(f"Failed to {description}: integrity constraint violated") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to {description}: {e}")
        raise StoreError(f"Failed to {description}") from e


class EntityStore(Generic[Model]):
    """Store adapter for a single model class."""

    def __init__(self, model: Type[Model]):
        self.model = model
        self.model_name = model.__tablename__

    def _not_found(self, object_id: str) -> NotFoundError:
        return NotFoundError(f"{self.model_name.replace('_', ' ').capitalize()} {object_id} not found")

    def get(self, object_id: str) -> tuple[Model | None, WorkflowError | None]:
        try:
            instance = db.session.get(self.model, object_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to load {self.model_name} {object_id}: {e}")
            return None, StoreError(f"Failed to load {self.model_name}")
        if instance is None:
            return None, self._not_found(object_id)
        return instance, None

    def require(self, object_id: str) -> Model:
        instance, error = self.get(object_id)
        if error:
            raise error
        return instance

    def list(
        self,
        *,
        status: Any = None,
        is_validated: bool | None = None,
        owner_id: str | None = None,
        has_draft: bool | None = None,
        parent_id: str | None = None,
        order_by: Any = None,
        **criteria: Any,
    ) -> tuple[list[Model], WorkflowError | None]:
        """List rows matching the given filters.

        ``owner_id`` matches the creator (or proposer for edit requests);
        ``parent_id`` matches the expedition or organization a row hangs off.
        """
        stmt = select(self.model)

        if status is not None:
            stmt = stmt.where(self.model.status == status)
        if is_validated is not None:
            stmt = stmt.where(self.model.is_validated.is_(is_validated))
        if owner_id is not None:
            owner_column = self.model.created_by if hasattr(self.model, 'created_by') else self.model.user_id
            stmt = stmt.where(owner_column == owner_id)
        if has_draft is not None:
            stmt = stmt.where(
                self.model.draft_data.is_not(None) if has_draft else self.model.draft_data.is_(None)
            )
        if parent_id is not None:
            stmt = stmt.where(self._parent_clause(parent_id))
        if criteria:
            stmt = stmt.filter_by(**criteria)

        stmt = stmt.order_by(order_by if order_by is not None else self.model.created_at.asc())

        try:
            return list(db.session.execute(stmt).scalars().all()), None
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to list {self.model_name}: {e}")
            return [], StoreError(f"Failed to list {self.model_name}")

    def _parent_clause(self, parent_id: str):
        if self.model is Quest:
            return or_(Quest.expedition_id == parent_id, Quest.organization_id == parent_id)
        if self.model is Expedition:
            return Expedition.organization_id == parent_id
        return false()

    def insert(self, payload: dict[str, Any]) -> tuple[Model | None, WorkflowError | None]:
        instance = self.model(**payload)
        db.session.add(instance)
        try:
            commit(f"create {self.model_name}")
        except WorkflowError as e:
            return None, e
        return instance, None

    def update(
        self,
        object_id: str,
        data: dict[str, Any],
        expected_version: int | None = None,
    ) -> tuple[Model | None, WorkflowError | None]:
        instance, error = self.get(object_id)
        if error:
            return None, error

        error = self.check_version(instance, expected_version)
        if error:
            return None, error

        for key, value in data.items():
            if hasattr(instance, key) and key not in PROTECTED_FIELDS:
                setattr(instance, key, value)

        try:
            commit(f"update {self.model_name}")
        except WorkflowError as e:
            return None, e
        return instance, None

    def delete(self, object_id: str, expected_version: int | None = None) -> tuple[bool, WorkflowError | None]:
        instance, error = self.get(object_id)
        if error:
            return False, error

        error = self.check_version(instance, expected_version)
        if error:
            return False, error

        db.session.delete(instance)
        try:
            commit(f"delete {self.model_name}")
        except WorkflowError as e:
            return False, e
        return True, None

    def check_version(self, instance: Model, expected_version: Any) -> WorkflowError | None:
        """Re-validate the row version a caller read earlier."""
        if expected_version is None or not hasattr(instance, 'row_version'):
            return None
        try:
            expected = int(expected_version)
        except (TypeError, ValueError):
            return ValidationError("row_version must be an integer", fields=['row_version'])
        if expected != instance.row_version:
            return ConflictError(
                f"{self.model_name.capitalize()} {instance.id} changed since it was loaded"
            )
        return None


def store_for(kind: str) -> EntityStore:
    """Return the store for a catalog entity kind (quest/expedition/organization)."""
    model = CONTENT_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown entity kind: {kind}")
    return EntityStore(model)


edit_request_store: EntityStore[EditRequest] = EntityStore(EditRequest)


def parent_owner_id(kind: str, payload: dict[str, Any]) -> str | None:
    """Owner of the container a submission is filed under.

    Quests resolve to their expedition when one is given, otherwise to their
    organization; expeditions resolve to their organization.
    """
    parent: Expedition | Organization | None = None
    if kind == Quest.KIND and payload.get('expedition_id'):
        parent = db.session.get(Expedition, payload['expedition_id'])
    elif kind in (Quest.KIND, Expedition.KIND) and payload.get('organization_id'):
        parent = db.session.get(Organization, payload['organization_id'])
    return parent.created_by if parent is not None else None


def organization_ref(entity: Any) -> OrganizationRef | None:
    if isinstance(entity, Organization):
        return None
    organization = getattr(entity, 'organization', None)
    if organization is None and isinstance(entity, Quest) and entity.expedition is not None:
        organization = entity.expedition.organization
    if organization is None:
        return None
    return OrganizationRef(
        id=organization.id,
        name=organization.name,
        is_validated=organization.is_validated,
    )


def progress_count(entity: Any) -> int:
    """Number of learner progress rows hanging off an entity."""
    stmt = select(func.count(QuestProgress.id)).select_from(QuestProgress)
    if isinstance(entity, Quest):
        stmt = stmt.where(QuestProgress.quest_id == entity.id)
    elif isinstance(entity, Expedition):
        stmt = stmt.join(Quest, QuestProgress.quest_id == Quest.id).where(Quest.expedition_id == entity.id)
    else:
        expedition_ids = select(Expedition.id).where(Expedition.organization_id == entity.id)
        stmt = stmt.join(Quest, QuestProgress.quest_id == Quest.id).where(or_(
            Quest.organization_id == entity.id,
            Quest.expedition_id.in_(expedition_ids),
        ))
    return db.session.execute(stmt).scalar_one()


def validated_names(kind: str) -> list[tuple[str, str]]:
    """``(id, name)`` pairs of live, validated entities of a kind."""
    model = store_for(kind).model
    name_column = getattr(model, model.NAME_FIELD)
    stmt = (
        select(model.id, name_column)
        .where(model.status == ContentStatus.PUBLISHED)
        .where(model.is_validated.is_(True))
        .order_by(name_column)
    )
    return [(row[0], row[1]) for row in db.session.execute(stmt).all()]


def retarget(source: Any, target: Any) -> None:
    """Point every reference to ``source`` at ``target`` (not committed)."""
    if isinstance(source, Organization):
        for expedition in list(source.expeditions):
            expedition.organization = target
        for quest in list(source.quests):
            quest.organization = target
    elif isinstance(source, Expedition):
        for quest in list(source.quests):
            quest.expedition = target
    elif isinstance(source, Quest):
        learners = {p.user_id for p in target.progress}
        for progress in list(source.progress):
            if progress.user_id in learners:
                # The learner already tracks the canonical quest; delete-orphan drops it.
                source.progress.remove(progress)
            else:
                progress.quest = target
        for mission in list(source.missions):
            mission.quest = target
    _repoint_payloads(source, target)


# kind of a merged row -> (model that can reference it, payload key)
PAYLOAD_REFERENCES: dict[str, tuple[tuple[Any, str], ...]] = {
    Organization.KIND: ((Expedition, 'organization_id'), (Quest, 'organization_id')),
    Expedition.KIND: ((Quest, 'expedition_id'),),
}


def _repoint_payloads(source: Any, target: Any) -> None:
    """Rewrite ids held in shadow drafts and pending edit requests.

    Those payloads reach the live row only when approved later, so they must
    already name ``target`` by then.
    """
    for model, key in PAYLOAD_REFERENCES.get(source.KIND, ()):
        drafts = db.session.execute(select(model).where(model.draft_data.is_not(None))).scalars().all()
        for row in drafts:
            if row.draft_data.get(key) == source.id:
                # JSON columns are not mutation-tracked; assign a new dict
                row.draft_data = {**row.draft_data, key: target.id}

        stmt = (
            select(EditRequest)
            .where(EditRequest.resource_type == model.KIND)
            .where(EditRequest.status == EditRequestStatus.PENDING)
        )
        for request in db.session.execute(stmt).scalars().all():
            if request.data.get(key) == source.id:
                request.data = {**request.data, key: target.id}


def close_pending_edit_requests(kind: str, resource_id: str, reason: str) -> int:
    """Reject pending proposals against a row that is about to disappear (not committed)."""
    stmt = (
        select(EditRequest)
        .where(EditRequest.resource_type == kind)
        .where(EditRequest.resource_id == resource_id)
        .where(EditRequest.status == EditRequestStatus.PENDING)
    )
    requests = db.session.execute(stmt).scalars().all()
    for request in requests:
        request.status = EditRequestStatus.REJECTED
        request.rejection_reason = reason
        request.reviewed_at = datetime.now(timezone.utc)
    return len(requests)


__all__ = [
    "EntityStore",
    "OrganizationRef",
    "commit",
    "store_for",
    "edit_request_store",
    "parent_owner_id",
    "organization_ref",
    "progress_count",
    "validated_names",
    "retarget",
    "close_pending_edit_requests",
]
