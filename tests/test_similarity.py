import pytest

from questgate.extensions import db
from questgate.models import ContentStatus, EditRequest, EditRequestStatus, Expedition, Mission, Quest, QuestProgress
from questgate.services import similarity
from questgate.services.edit_requests import EditRequestManager
from questgate.services.errors import InvalidStateError, NotFoundError, ValidationError
from questgate.services.shadow_draft import ShadowDraftManager

from conftest import add_progress, make_expedition, make_organization, make_quest


class TestScore:

    def test_levenshtein_classic_pair(self):
        assert similarity.levenshtein('kitten', 'sitting') == 3

    def test_levenshtein_against_empty(self):
        assert similarity.levenshtein('', 'abc') == 3
        assert similarity.levenshtein('abc', '') == 3

    def test_score_kitten_sitting(self):
        assert similarity.score('kitten', 'sitting') == pytest.approx(1 - 3 / 7)

    def test_score_ignores_case(self):
        assert similarity.score('React Basics', 'react basics') == 1.0

    def test_score_ignores_surrounding_blanks(self):
        assert similarity.score('  React Basics ', 'react basics') == 1.0

    def test_two_empty_strings_are_identical(self):
        assert similarity.score('', '') == 1.0

    def test_score_is_symmetric(self):
        assert similarity.score('Vue Router', 'vue routing') == similarity.score('vue routing', 'Vue Router')


class TestSuggest:

    def test_near_duplicate_is_suggested_with_high_confidence(self):
        matches = similarity.suggest('React Basic', ['React Basics', 'Django for Beginners'])

        assert [m.name for m in matches] == ['React Basics']
        assert matches[0].score == pytest.approx(11 / 12)
        assert matches[0].confidence == 'high'

    def test_threshold_is_strict(self):
        # 'abcd' vs 'abxy' scores exactly 0.5
        assert similarity.suggest('abcd', ['abxy'], threshold=0.5) == []
        assert len(similarity.suggest('abcd', ['abxy'], threshold=0.49)) == 1

    def test_results_are_sorted_and_capped(self):
        existing = ['React Basics', 'React Basic', 'React Basis', 'React Bas', 'Reactor']
        matches = similarity.suggest('React Basics', existing, top_k=3)

        assert len(matches) == 3
        assert matches[0].name == 'React Basics'
        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_input_order(self):
        matches = similarity.suggest('abcd', ['abce', 'abcf', 'abcg'], threshold=0.5, top_k=3)
        assert [m.name for m in matches] == ['abce', 'abcf', 'abcg']

    def test_pairs_carry_ids(self):
        matches = similarity.suggest('Web Basics', [('e-1', 'Web Basic')])
        assert matches[0].id == 'e-1'
        assert matches[0].to_dict()['id'] == 'e-1'

    def test_low_confidence_bucket(self):
        matches = similarity.suggest('Python', ['Pythonic'])
        assert matches[0].score == pytest.approx(0.75)
        assert matches[0].confidence == 'low'

    def test_confidence_boundary_is_exclusive(self):
        assert similarity.Match(name='x', score=0.8).confidence == 'low'
        assert similarity.Match(name='x', score=0.81).confidence == 'high'


class TestMerge:

    def test_merge_organization_repoints_children(self, users):
        owner = users['owner']
        canonical = make_organization(owner, name='Frontend Guild')
        duplicate = make_organization(users['contributor'], name='Frontend Guld', validated=False)
        expedition = make_expedition(users['contributor'], organization=duplicate)
        quest = make_quest(users['contributor'], organization=duplicate)
        duplicate_id = duplicate.id

        target = similarity.merge(duplicate, canonical.id)

        assert target.id == canonical.id
        assert db.session.get(type(canonical), duplicate_id) is None
        assert db.session.get(Expedition, expedition.id).organization_id == canonical.id
        assert db.session.get(Quest, quest.id).organization_id == canonical.id

    def test_merge_quest_moves_progress_and_missions(self, users):
        canonical = make_quest(users['owner'], title='React Basics')
        duplicate = make_quest(users['contributor'], title='React Basic', validated=False)
        db.session.add(Mission(quest_id=duplicate.id, title='Build a counter'))
        db.session.commit()
        add_progress(users['learner'], duplicate)
        add_progress(users['admin'], duplicate)
        add_progress(users['admin'], canonical)

        similarity.merge(duplicate, canonical.id)

        progress = db.session.query(QuestProgress).filter_by(quest_id=canonical.id).all()
        assert sorted(p.user_id for p in progress) == sorted([users['learner'].id, users['admin'].id])
        assert [m.title for m in db.session.get(Quest, canonical.id).missions] == ['Build a counter']

    def test_merge_closes_pending_edit_requests(self, users):
        canonical = make_quest(users['owner'], title='React Basics')
        duplicate = make_quest(users['contributor'], title='React Basic')
        request = EditRequest(
            resource_type='quest',
            resource_id=duplicate.id,
            user_id=users['learner'].id,
            data={'summary': 'Better summary'},
            reason='Typo',
        )
        db.session.add(request)
        db.session.commit()

        similarity.merge(duplicate, canonical.id)

        closed = db.session.get(EditRequest, request.id)
        assert closed.status == EditRequestStatus.REJECTED
        assert closed.rejection_reason == 'Merged into React Basics'

    def test_merge_requires_target(self, users):
        quest = make_quest(users['owner'])
        with pytest.raises(ValidationError):
            similarity.merge(quest, '')

    def test_merge_into_itself_is_refused(self, users):
        quest = make_quest(users['owner'])
        with pytest.raises(ValidationError):
            similarity.merge(quest, quest.id)

    def test_merge_into_missing_target(self, users):
        quest = make_quest(users['owner'], validated=False)
        with pytest.raises(NotFoundError):
            similarity.merge(quest, 'missing-id')

    def test_merge_into_unvalidated_target_is_refused(self, users):
        source = make_quest(users['owner'], validated=False)
        target = make_quest(users['contributor'], title='React Basic', validated=False)

        with pytest.raises(InvalidStateError):
            similarity.merge(source, target.id)
        assert db.session.get(Quest, source.id) is not None

    def test_merge_keeps_draft_target_out(self, users):
        source = make_quest(users['owner'], validated=False)
        target = make_quest(users['contributor'], status=ContentStatus.DRAFT, validated=False)

        with pytest.raises(InvalidStateError):
            similarity.merge(source, target.id)

    def test_merge_repoints_pending_payloads(self, users):
        canonical = make_organization(users['owner'], name='Frontend Guild')
        duplicate = make_organization(users['contributor'], name='Frontend Guld', validated=False)
        quest = make_quest(users['owner'], expedition=make_expedition(users['owner']))
        quest.draft_data = {'organization_id': duplicate.id, 'summary': 'Moved'}
        expedition = make_expedition(users['owner'], title='Backend Path')
        request = EditRequest(
            resource_type='expedition',
            resource_id=expedition.id,
            user_id=users['learner'].id,
            data={'organization_id': duplicate.id},
            reason='Belongs to the guild',
        )
        db.session.add(request)
        db.session.commit()

        similarity.merge(duplicate, canonical.id)

        assert quest.draft_data == {'organization_id': canonical.id, 'summary': 'Moved'}
        assert db.session.get(EditRequest, request.id).data == {'organization_id': canonical.id}

        ShadowDraftManager().approve(quest)
        EditRequestManager().approve(request.id)

        assert quest.organization_id == canonical.id
        assert expedition.organization_id == canonical.id

    def test_merge_leaves_unrelated_payloads_alone(self, users):
        canonical = make_organization(users['owner'], name='Frontend Guild')
        duplicate = make_organization(users['contributor'], name='Frontend Guld', validated=False)
        other = make_organization(users['owner'], name='Data Club')
        quest = make_quest(users['owner'])
        quest.draft_data = {'organization_id': other.id}
        db.session.commit()

        similarity.merge(duplicate, canonical.id)

        assert quest.draft_data == {'organization_id': other.id}
