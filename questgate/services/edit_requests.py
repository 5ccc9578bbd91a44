"""Edit requests: change proposals from users who cannot write an entity directly."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from flask import current_app
from sqlalchemy import select

from questgate.extensions import db
from questgate.models import EditRequest, EditRequestStatus, User
from questgate.services.errors import InvalidStateError, NotFoundError, ValidationError
from questgate.services.payloads import clean_fields
from questgate.services.store import commit, edit_request_store, store_for


class EditRequestManager:

    def submit(
        self,
        resource_type: str,
        resource_id: str,
        proposer_id: str,
        fields: dict[str, Any] | None,
        reason: str | None,
    ) -> EditRequest:
        if not reason or not reason.strip():
            raise ValidationError("A reason for the edit is required", fields=['reason'])
        minimum = current_app.config.get('EDIT_REQUEST_MIN_REASON', 1)
        if len(reason.strip()) < minimum:
            raise ValidationError(
                f"The reason must be at least {minimum} characters long",
                fields=['reason'],
            )

        cleaned = clean_fields(resource_type, fields)
        if not cleaned:
            raise ValidationError("No editable fields were supplied", fields=['data'])

        store_for(resource_type).require(resource_id)

        request, error = edit_request_store.insert({
            'resource_type': resource_type,
            'resource_id': resource_id,
            'user_id': proposer_id,
            'data': cleaned,
            'reason': reason.strip(),
            'status': EditRequestStatus.PENDING,
        })
        if error:
            raise error

        current_app.logger.info(
            f"Edit request {request.id} submitted for {resource_type} {resource_id} by {proposer_id}"
        )
        return request

    def pending_for(self, resource_type: str, resource_id: str) -> EditRequest | None:
        """Most recent pending request against an entity, if any."""
        stmt = (
            select(EditRequest)
            .where(EditRequest.resource_type == resource_type)
            .where(EditRequest.resource_id == resource_id)
            .where(EditRequest.status == EditRequestStatus.PENDING)
            .order_by(EditRequest.created_at.desc())
            .limit(1)
        )
        return db.session.execute(stmt).scalar_one_or_none()

    def has_pending(self, resource_type: str, resource_id: str) -> bool:
        return self.pending_for(resource_type, resource_id) is not None

    def list_pending(self) -> list[EditRequest]:
        requests, error = edit_request_store.list(
            status=EditRequestStatus.PENDING,
            order_by=EditRequest.created_at.asc(),
        )
        if error:
            raise error
        return requests

    def approve(self, request_id: str, reviewer: User | None = None) -> EditRequest | None:
        """Apply the proposal straight to the live row.

        Missing or already-decided requests are a no-op; the request is
        returned unchanged (or None when it no longer exists). A request whose
        entity is gone is closed as rejected instead of applied.
        """
        request, error = edit_request_store.get(request_id)
        if isinstance(error, NotFoundError):
            return None
        if error:
            raise error
        if request.status != EditRequestStatus.PENDING:
            if request.status == EditRequestStatus.REJECTED:
                raise InvalidStateError("Edit request was already rejected")
            return request

        entity, error = store_for(request.resource_type).get(request.resource_id)
        if isinstance(error, NotFoundError):
            current_app.logger.warning(
                f"Edit request {request.id} targets missing {request.resource_type} {request.resource_id}"
            )
            request.rejection_reason = f"The {request.resource_type} no longer exists"
            self._mark(request, EditRequestStatus.REJECTED, reviewer)
            commit("close orphaned edit request")
            return request
        if error:
            raise error

        for field, value in clean_fields(request.resource_type, request.data).items():
            setattr(entity, field, value)

        self._mark(request, EditRequestStatus.APPROVED, reviewer)
        commit("approve edit request")
        return request

    def reject(
        self,
        request_id: str,
        reason: str | None = None,
        reviewer: User | None = None,
    ) -> EditRequest | None:
        """Decline the proposal. A reason is optional here."""
        request, error = edit_request_store.get(request_id)
        if isinstance(error, NotFoundError):
            return None
        if error:
            raise error
        if request.status != EditRequestStatus.PENDING:
            if request.status == EditRequestStatus.APPROVED:
                raise InvalidStateError("Edit request was already approved")
            return request

        request.rejection_reason = reason.strip() if reason and reason.strip() else None
        self._mark(request, EditRequestStatus.REJECTED, reviewer)
        commit("reject edit request")
        return request

    def discard(self, request_id: str) -> bool:
        deleted, error = edit_request_store.delete(request_id)
        if isinstance(error, NotFoundError):
            return False
        if error:
            raise error
        return deleted

    @staticmethod
    def _mark(request: EditRequest, status: EditRequestStatus, reviewer: User | None) -> None:
        request.status = status
        request.reviewed_at = datetime.now(timezone.utc)
        request.reviewed_by_id = reviewer.id if reviewer else None


__all__ = ["EditRequestManager"]
