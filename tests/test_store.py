import pytest

from questgate.extensions import db
from questgate.models import ContentStatus, EditRequest, Quest
from questgate.services.errors import ConflictError, NotFoundError, ValidationError
from questgate.services.store import (
    edit_request_store,
    organization_ref,
    parent_owner_id,
    progress_count,
    store_for,
)

from conftest import add_progress, make_expedition, make_organization, make_quest


def test_get_returns_error_tuple_for_missing_rows(ctx):
    entity, error = store_for('quest').get('missing')

    assert entity is None
    assert isinstance(error, NotFoundError)


def test_store_for_unknown_kind(ctx):
    with pytest.raises(ValidationError):
        store_for('course')


def test_list_filters(users):
    owner, contributor = users['owner'], users['contributor']
    expedition = make_expedition(owner)
    live = make_quest(owner, title='Live', expedition=expedition)
    pending = make_quest(contributor, title='Pending', validated=False)
    draft = make_quest(contributor, title='Draft', status=ContentStatus.DRAFT, validated=False)
    live.draft_data = {'summary': 'x'}
    db.session.commit()
    store = store_for('quest')

    def ids(**filters):
        rows, error = store.list(**filters)
        assert error is None
        return {row.id for row in rows}

    assert ids(status=ContentStatus.PUBLISHED, is_validated=False) == {pending.id}
    assert ids(owner_id=contributor.id) == {pending.id, draft.id}
    assert ids(has_draft=True) == {live.id}
    assert ids(parent_id=expedition.id) == {live.id}


def test_update_checks_expected_version(users):
    quest = make_quest(users['owner'])
    store = store_for('quest')

    updated, error = store.update(quest.id, {'summary': 'v2'}, expected_version=1)
    assert error is None
    assert updated.row_version == 2

    stale, error = store.update(quest.id, {'summary': 'v3'}, expected_version=1)
    assert stale is None
    assert isinstance(error, ConflictError)
    assert quest.summary == 'v2'


def test_update_skips_protected_fields(users):
    quest = make_quest(users['owner'])
    original_owner = quest.created_by

    store_for('quest').update(quest.id, {'created_by': users['contributor'].id, 'summary': 'ok'})

    assert quest.created_by == original_owner
    assert quest.summary == 'ok'


def test_malformed_version_is_a_validation_error(users):
    quest = make_quest(users['owner'])
    assert isinstance(store_for('quest').check_version(quest, 'abc'), ValidationError)


def test_delete(users):
    quest = make_quest(users['owner'])
    quest_id = quest.id

    deleted, error = store_for('quest').delete(quest_id)

    assert deleted is True and error is None
    assert db.session.get(Quest, quest_id) is None


def test_edit_request_store_owner_filter(users):
    quest = make_quest(users['owner'])
    db.session.add(EditRequest(resource_type='quest', resource_id=quest.id, user_id=users['learner'].id,
                               data={'summary': 'x'}, reason='r'))
    db.session.commit()

    rows, _ = edit_request_store.list(owner_id=users['learner'].id)

    assert len(rows) == 1


def test_parent_owner_resolution(users):
    organization = make_organization(users['admin'])
    expedition = make_expedition(users['owner'], organization=organization)

    assert parent_owner_id('quest', {'expedition_id': expedition.id}) == users['owner'].id
    assert parent_owner_id('quest', {'organization_id': organization.id}) == users['admin'].id
    assert parent_owner_id('expedition', {'organization_id': organization.id}) == users['admin'].id
    assert parent_owner_id('organization', {}) is None
    assert parent_owner_id('quest', {'expedition_id': 'missing'}) is None


def test_organization_ref_follows_the_expedition(users):
    organization = make_organization(users['owner'], name='Frontend Guild')
    expedition = make_expedition(users['owner'], organization=organization)
    quest = make_quest(users['owner'], expedition=expedition)

    ref = organization_ref(quest)

    assert ref.id == organization.id
    assert ref.to_dict() == {'id': organization.id, 'name': 'Frontend Guild', 'is_validated': True}
    assert organization_ref(organization) is None


def test_progress_count_for_each_kind(users):
    organization = make_organization(users['owner'])
    expedition = make_expedition(users['owner'], organization=organization)
    quest = make_quest(users['owner'], expedition=expedition)
    loose = make_quest(users['owner'], title='Loose', organization=organization)
    add_progress(users['learner'], quest)
    add_progress(users['learner'], loose)
    add_progress(users['admin'], loose)

    assert progress_count(quest) == 1
    assert progress_count(expedition) == 1
    assert progress_count(organization) == 3
