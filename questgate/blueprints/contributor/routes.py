"""Contributor JSON API: create, publish, edit and propose changes to content."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from questgate.auth import login_required_json
from questgate.blueprints.common import json_payload, resolve_kind
from questgate.blueprints.common.serializers import (
    serialize_edit_request,
    serialize_entity,
    serialize_mission,
)
from questgate.extensions import limiter
from questgate.models import Quest
from questgate.security.config import api_rate_limit
from questgate.services.contributions import ContributionService
from questgate.services.notifications import list_for_user, serialize_notification

contributor_bp = Blueprint('contributor', __name__)


def _owns(entity) -> bool:
    return current_user.is_authenticated and (
        current_user.is_admin or entity.created_by == current_user.id
    )


@contributor_bp.route('/notifications', methods=['GET'])
@login_required_json
def notifications():
    unread_only = request.args.get('unread') in ('1', 'true')
    items = list_for_user(current_user.id, unread_only=unread_only)
    return jsonify({'items': [serialize_notification(n) for n in items]})


@contributor_bp.route('/quests/<quest_id>/missions', methods=['PUT'])
@login_required_json
@limiter.limit(api_rate_limit)
def replace_missions(quest_id):
    payload = json_payload()
    missions = ContributionService().replace_missions(quest_id, payload.get('missions'), current_user)
    return jsonify({'items': [serialize_mission(m) for m in missions]})


@contributor_bp.route('/<kind>', methods=['POST'])
@login_required_json
@limiter.limit(api_rate_limit)
def create_entity(kind):
    entity = ContributionService().create_entity(resolve_kind(kind), json_payload(), current_user)
    return jsonify(serialize_entity(entity, include_draft=True)), 201


@contributor_bp.route('/<kind>/<entity_id>', methods=['GET'])
def get_entity(kind, entity_id):
    entity = ContributionService().get(resolve_kind(kind), entity_id, current_user)
    data = serialize_entity(entity, include_draft=_owns(entity))
    if isinstance(entity, Quest):
        data['missions'] = [serialize_mission(m) for m in entity.missions]
    return jsonify(data)


@contributor_bp.route('/<kind>/<entity_id>/publish', methods=['POST'])
@login_required_json
@limiter.limit(api_rate_limit)
def request_publish(kind, entity_id):
    payload = json_payload()
    entity = ContributionService().request_publish(
        resolve_kind(kind),
        entity_id,
        current_user,
        row_version=payload.get('row_version'),
    )
    return jsonify(serialize_entity(entity, include_draft=True))


@contributor_bp.route('/<kind>/<entity_id>', methods=['PUT'])
@login_required_json
@limiter.limit(api_rate_limit)
def save_entity(kind, entity_id):
    entity, outcome = ContributionService().save(resolve_kind(kind), entity_id, json_payload(), current_user)
    data = serialize_entity(entity, include_draft=True)
    data['outcome'] = outcome
    return jsonify(data)


@contributor_bp.route('/<kind>/<entity_id>/edit', methods=['GET'])
@login_required_json
def load_for_editing(kind, entity_id):
    return jsonify(ContributionService().load_for_editing(resolve_kind(kind), entity_id, current_user))


@contributor_bp.route('/<kind>/<entity_id>', methods=['DELETE'])
@login_required_json
@limiter.limit(api_rate_limit)
def remove_entity(kind, entity_id):
    outcome = ContributionService().remove(
        resolve_kind(kind),
        entity_id,
        current_user,
        row_version=request.args.get('row_version'),
    )
    return jsonify({'success': True, 'outcome': outcome})


@contributor_bp.route('/<kind>/<entity_id>/edit-requests', methods=['POST'])
@login_required_json
@limiter.limit(api_rate_limit)
def submit_edit_request(kind, entity_id):
    payload = json_payload()
    edit_request = ContributionService().submit_edit_request(
        resolve_kind(kind),
        entity_id,
        payload.get('data') or payload.get('fields'),
        payload.get('reason'),
        current_user,
    )
    return jsonify(serialize_edit_request(edit_request)), 201
