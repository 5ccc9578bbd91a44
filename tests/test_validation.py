import pytest
import redis

from questgate.extensions import db
from questgate.models import AuditLog, ContentStatus, EditRequestStatus, Expedition, Notification, Organization, Quest
from questgate.services.cache import CacheInvalidator
from questgate.services.edit_requests import EditRequestManager
from questgate.services.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from questgate.services.lifecycle import LifecycleState, state_of
from questgate.services.shadow_draft import ShadowDraftManager
from questgate.services.validation import ValidationOrchestrator

from conftest import make_expedition, make_organization, make_quest


@pytest.fixture
def orchestrator(ctx, fake_redis):
    return ValidationOrchestrator()


def _audit_actions():
    return [entry.action for entry in db.session.query(AuditLog).all()]


def _notifications_for(user):
    return db.session.query(Notification).filter_by(user_id=user.id).all()


class TestApprove:

    def test_approve_pending_submission(self, users, orchestrator, fake_redis):
        quest = make_quest(users['contributor'], validated=False)

        decision = orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'approved'
        assert state_of(quest) == LifecycleState.LIVE
        assert _audit_actions() == ['quest_approved']
        assert fake_redis.store == {'test:tag:quests': 1, 'test:tag:admin': 1}
        [notification] = _notifications_for(users['contributor'])
        assert notification.type == 'quest_approved'
        assert notification.link == f'/api/quests/{quest.id}'

    def test_double_approve_is_a_noop(self, users, orchestrator, fake_redis):
        quest = make_quest(users['contributor'], validated=False)
        orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        decision = orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'noop'
        assert decision.to_dict()['success'] is True
        assert _audit_actions() == ['quest_approved']
        assert fake_redis.store['test:tag:quests'] == 1

    def test_approve_missing_entity_succeeds_quietly(self, users, orchestrator):
        decision = orchestrator.decide('quest', 'gone', 'approve', {}, users['admin'])
        assert decision.outcome == 'noop'

    def test_approve_prefers_the_shadow_draft(self, users, orchestrator):
        quest = make_quest(users['owner'], summary='Old')
        ShadowDraftManager().save_edit(quest, {'summary': 'New'}, 'Update')

        decision = orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'draft_approved'
        assert decision.to_dict()['version'] == 2
        assert quest.summary == 'New'
        assert quest.draft_data is None

    def test_approving_own_submission_sends_no_notification(self, users, orchestrator):
        quest = make_quest(users['admin'], validated=False)

        orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        assert _notifications_for(users['admin']) == []

    def test_stale_row_version_conflicts(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)
        seen = quest.row_version
        quest.summary = 'Edited elsewhere'
        db.session.commit()

        with pytest.raises(ConflictError):
            orchestrator.decide('quest', quest.id, 'approve', {'row_version': seen}, users['admin'])
        assert quest.is_validated is False

    def test_cache_outage_does_not_undo_the_decision(self, app, users):
        class BrokenRedis:
            def incr(self, key):
                raise redis.ConnectionError('down')

        orchestrator = ValidationOrchestrator(cache=CacheInvalidator(client=BrokenRedis()))
        quest = make_quest(users['contributor'], validated=False)

        decision = orchestrator.decide('quest', quest.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'approved'
        assert quest.is_validated is True


class TestReject:

    def test_reject_draft_without_reason_changes_nothing(self, users, orchestrator):
        quest = make_quest(users['owner'])
        ShadowDraftManager().save_edit(quest, {'summary': 'New'}, 'Update')

        with pytest.raises(ValidationError):
            orchestrator.decide('quest', quest.id, 'reject', {}, users['admin'])

        assert quest.draft_data is not None
        assert _audit_actions() == []

    def test_reject_draft_with_reason(self, users, orchestrator):
        quest = make_quest(users['owner'], summary='Live')
        ShadowDraftManager().save_edit(quest, {'summary': 'New'}, 'Update')

        decision = orchestrator.decide('quest', quest.id, 'reject', {'rejection_reason': 'Too vague'}, users['admin'])

        assert decision.outcome == 'draft_rejected'
        assert quest.summary == 'Live'
        assert quest.rejection_reason == 'Too vague'
        [notification] = _notifications_for(users['owner'])
        assert 'Too vague' in notification.message

    def test_reject_new_submission_deletes_it(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)
        quest_id = quest.id

        decision = orchestrator.decide('quest', quest_id, 'reject', {}, users['admin'])

        assert decision.outcome == 'rejected'
        assert db.session.get(Quest, quest_id) is None
        [notification] = _notifications_for(users['contributor'])
        assert notification.link is None

    def test_reject_missing_entity_is_a_noop(self, users, orchestrator):
        assert orchestrator.decide('quest', 'gone', 'reject', {}, users['admin']).outcome == 'noop'

    def test_reject_live_entity_without_draft_is_a_noop(self, users, orchestrator):
        quest = make_quest(users['owner'])
        decision = orchestrator.decide('quest', quest.id, 'reject', {'rejection_reason': 'x'}, users['admin'])

        assert decision.outcome == 'noop'
        assert quest.is_validated is True


class TestUpdateAndMerge:

    def test_update_pending_then_approve(self, users, orchestrator):
        expedition = make_expedition(users['owner'])
        quest = make_quest(users['contributor'], expedition=expedition, validated=False, summary='rough')

        decision = orchestrator.decide(
            'quest', quest.id, 'update', {'fields': {'summary': 'Polished'}}, users['admin'],
        )

        assert decision.outcome == 'updated'
        assert quest.summary == 'Polished'
        assert quest.is_validated is True

    def test_update_accepts_top_level_fields(self, users, orchestrator):
        quest = make_quest(users['contributor'], expedition=make_expedition(users['owner']), validated=False)

        orchestrator.decide('quest', quest.id, 'update', {'action': 'update', 'title': 'React 101'}, users['admin'])

        assert quest.title == 'React 101'

    def test_update_that_breaks_publish_rules_is_refused(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)

        with pytest.raises(ValidationError):
            orchestrator.decide('quest', quest.id, 'update', {'fields': {'xp_reward': 0}}, users['admin'])

        assert quest.xp_reward == 100
        assert quest.is_validated is False

    def test_update_live_entity_is_refused(self, users, orchestrator):
        quest = make_quest(users['owner'], summary='Live')
        with pytest.raises(InvalidStateError):
            orchestrator.decide('quest', quest.id, 'update', {'fields': {'summary': 'x'}}, users['admin'])

    def test_repeated_update_on_live_entity_is_a_noop(self, users, orchestrator):
        quest = make_quest(users['contributor'], expedition=make_expedition(users['owner']), validated=False)
        orchestrator.decide('quest', quest.id, 'update', {'fields': {'summary': 'Polished'}}, users['admin'])

        decision = orchestrator.decide('quest', quest.id, 'update', {'fields': {'summary': 'Polished'}},
                                       users['admin'])

        assert decision.outcome == 'noop'

    def test_update_missing_entity_is_not_found(self, users, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.decide('quest', 'gone', 'update', {'fields': {}}, users['admin'])

    def test_merge_requires_target(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)
        with pytest.raises(ValidationError):
            orchestrator.decide('quest', quest.id, 'merge', {}, users['admin'])

    def test_merge_missing_source_is_not_found(self, users, orchestrator):
        target = make_quest(users['owner'])
        with pytest.raises(NotFoundError):
            orchestrator.decide('quest', 'gone', 'merge', {'targetId': target.id}, users['admin'])

    def test_merge_organization_repairs_references(self, users, orchestrator, fake_redis):
        canonical = make_organization(users['owner'], name='Frontend Guild')
        duplicate = make_organization(users['contributor'], name='Front-end Guild', validated=False)
        expedition = make_expedition(users['contributor'], organization=duplicate)
        duplicate_id = duplicate.id

        decision = orchestrator.decide(
            'organization', duplicate_id, 'merge', {'targetId': canonical.id}, users['admin'],
        )

        assert decision.outcome == 'merged'
        assert decision.to_dict()['target_id'] == canonical.id
        assert db.session.get(Organization, duplicate_id) is None
        assert db.session.get(Expedition, expedition.id).organization_id == canonical.id
        assert fake_redis.store['test:tag:organizations'] == 1
        [notification] = _notifications_for(users['contributor'])
        assert notification.type == 'organization_merged'
        assert 'Frontend Guild' in notification.message

    def test_unknown_action(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)
        with pytest.raises(ValidationError):
            orchestrator.decide('quest', quest.id, 'publish', {}, users['admin'])

    def test_unknown_kind(self, users, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.decide('course', 'x', 'approve', {}, users['admin'])


class TestEditRequestDispatch:

    def test_approve_edit_request(self, users, orchestrator):
        quest = make_quest(users['owner'], summary='Old')
        request = EditRequestManager().submit('quest', quest.id, users['contributor'].id, {'summary': 'New'}, 'Typo')

        decision = orchestrator.decide('edit_request', request.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'approved'
        assert quest.summary == 'New'
        assert _audit_actions() == ['edit_request_approved']
        [notification] = _notifications_for(users['contributor'])
        assert notification.type == 'edit_request_approved'

    def test_second_click_on_edit_request_is_a_noop(self, users, orchestrator):
        quest = make_quest(users['owner'])
        request = EditRequestManager().submit('quest', quest.id, users['contributor'].id, {'summary': 'New'}, 'Typo')
        orchestrator.decide('edit_request', request.id, 'reject', {'rejection_reason': 'No'}, users['admin'])

        decision = orchestrator.decide('edit_request', request.id, 'reject', {}, users['admin'])

        assert decision.outcome == 'noop'
        assert request.status == EditRequestStatus.REJECTED
        assert request.rejection_reason == 'No'

    def test_rejecting_the_submission_empties_its_edit_requests(self, users, orchestrator):
        quest = make_quest(users['contributor'], validated=False)
        request = EditRequestManager().submit('quest', quest.id, users['learner'].id, {'summary': 'New'}, 'Typo')

        orchestrator.decide('quest', quest.id, 'reject', {}, users['admin'])

        assert orchestrator.pending_edit_requests() == []
        assert request.status == EditRequestStatus.REJECTED

    def test_approving_an_orphaned_edit_request_rejects_it(self, users, orchestrator):
        quest = make_quest(users['owner'])
        request = EditRequestManager().submit('quest', quest.id, users['contributor'].id, {'summary': 'New'}, 'Typo')
        db.session.delete(quest)
        db.session.commit()

        decision = orchestrator.decide('edit_request', request.id, 'approve', {}, users['admin'])

        assert decision.outcome == 'rejected'
        assert _audit_actions() == ['edit_request_rejected']
        [notification] = _notifications_for(users['contributor'])
        assert notification.type == 'edit_request_rejected'

    def test_edit_requests_cannot_be_merged(self, users, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.decide('edit_request', 'x', 'merge', {'targetId': 'y'}, users['admin'])

    def test_discard_edit_request(self, users, orchestrator):
        quest = make_quest(users['owner'])
        request = EditRequestManager().submit('quest', quest.id, users['contributor'].id, {'summary': 'New'}, 'Typo')

        assert orchestrator.discard_edit_request(request.id, users['admin']) is True
        assert orchestrator.pending_edit_requests() == []
        assert _audit_actions() == ['edit_request_deleted']


class TestQueues:

    def test_pending_submissions_carry_suggestions(self, users, orchestrator):
        make_quest(users['owner'], title='React Basics')
        make_quest(users['owner'], title='Django for Beginners')
        make_quest(users['contributor'], title='React Basic (draft)', validated=False, status=ContentStatus.DRAFT)
        pending = make_quest(users['contributor'], title='React Basic', validated=False)

        [item] = orchestrator.pending_submissions('quest')

        assert item.entity.id == pending.id
        assert [m.name for m in item.suggestions] == ['React Basics']
        assert item.suggestions[0].confidence == 'high'

    def test_pending_submission_never_matches_itself(self, users, orchestrator):
        pending = make_quest(users['contributor'], title='Unique Snowflake', validated=False)

        [item] = orchestrator.pending_submissions('quest')

        assert item.entity.id == pending.id
        assert item.suggestions == []

    def test_pending_drafts_include_diff(self, users, orchestrator):
        quest = make_quest(users['owner'], summary='Old')
        make_quest(users['owner'], title='No draft here')
        ShadowDraftManager().save_edit(quest, {'summary': 'New'}, 'Update')

        [item] = orchestrator.pending_drafts('quest')

        assert item.entity.id == quest.id
        assert [(c.field, c.before, c.after) for c in item.changes] == [('summary', 'Old', 'New')]

    def test_validated_names_only_lists_live_entities(self, users, orchestrator):
        live = make_quest(users['owner'], title='React Basics')
        make_quest(users['contributor'], title='Pending', validated=False)

        assert orchestrator.validated_names('quest') == [(live.id, 'React Basics')]
