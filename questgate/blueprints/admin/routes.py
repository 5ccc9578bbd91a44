"""Admin validation queue: pending submissions, shadow drafts and edit requests."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user

from questgate.auth import admin_required
from questgate.blueprints.common import json_payload, resolve_kind
from questgate.blueprints.common.serializers import serialize_edit_request, serialize_entity
from questgate.extensions import limiter
from questgate.security.config import admin_rate_limit
from questgate.services.validation import EDIT_REQUEST_KIND, ValidationOrchestrator

admin_bp = Blueprint('admin', __name__)


@admin_bp.route('/validations/<kind>/pending', methods=['GET'])
@admin_required
def pending_submissions(kind):
    pending = ValidationOrchestrator().pending_submissions(resolve_kind(kind))
    items = []
    for item in pending:
        data = serialize_entity(item.entity)
        data['suggestions'] = [match.to_dict() for match in item.suggestions]
        items.append(data)
    return jsonify({'items': items})


@admin_bp.route('/validations/<kind>/drafts', methods=['GET'])
@admin_required
def pending_drafts(kind):
    drafts = ValidationOrchestrator().pending_drafts(resolve_kind(kind))
    items = []
    for item in drafts:
        data = serialize_entity(item.entity, include_draft=True)
        data['changes'] = [change.to_dict() for change in item.changes]
        items.append(data)
    return jsonify({'items': items})


@admin_bp.route('/validations/<kind>/names', methods=['GET'])
@admin_required
def validated_names(kind):
    names = ValidationOrchestrator().validated_names(resolve_kind(kind))
    return jsonify({'items': [{'id': entity_id, 'name': name} for entity_id, name in names]})


@admin_bp.route('/validations/edits', methods=['GET'])
@admin_required
def pending_edit_requests():
    requests = ValidationOrchestrator().pending_edit_requests()
    return jsonify({'items': [serialize_edit_request(r) for r in requests]})


@admin_bp.route('/validations/edits/<request_id>', methods=['PATCH'])
@admin_required
@limiter.limit(admin_rate_limit)
def decide_edit_request(request_id):
    payload = json_payload()
    decision = ValidationOrchestrator().decide(
        EDIT_REQUEST_KIND,
        request_id,
        payload.get('action'),
        payload,
        current_user,
    )
    return jsonify(decision.to_dict())


@admin_bp.route('/validations/edits/<request_id>', methods=['DELETE'])
@admin_required
@limiter.limit(admin_rate_limit)
def discard_edit_request(request_id):
    deleted = ValidationOrchestrator().discard_edit_request(request_id, current_user)
    return jsonify({'success': True, 'deleted': deleted})


@admin_bp.route('/validations/<kind>/<entity_id>', methods=['PATCH'])
@admin_required
@limiter.limit(admin_rate_limit)
def decide(kind, entity_id):
    payload = json_payload()
    decision = ValidationOrchestrator().decide(
        resolve_kind(kind),
        entity_id,
        payload.get('action'),
        payload,
        current_user,
    )
    return jsonify(decision.to_dict())
