"""Shared fixtures: in-memory app, users, catalog factories and session login."""

import pytest

from questgate import create_app
from questgate.config import TestingConfig
from questgate.extensions import db
from questgate.models import (
    ContentStatus,
    Expedition,
    Organization,
    Quest,
    QuestProgress,
    User,
    UserRole,
)


class FakeRedis:
    """Just enough of the redis client for cache-tag generations."""

    def __init__(self):
        self.store = {}

    def incr(self, key):
        self.store[key] = self.store.get(key, 0) + 1
        return self.store[key]

    def get(self, key):
        value = self.store.get(key)
        return str(value).encode() if value is not None else None


@pytest.fixture
def app():
    """Create and configure a test application instance."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Run the test body inside an application context."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture
def fake_redis(app):
    from questgate.services.cache import CacheInvalidator

    client = FakeRedis()
    app.extensions['questgate.cache'] = CacheInvalidator(client=client, prefix='test')
    return client


def make_user(email, role=UserRole.CONTRIBUTOR, password='Secret123!'):
    user = User(email=email, username=email.split('@')[0], role=role, active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def make_organization(owner, name='Frontend Guild', status=ContentStatus.PUBLISHED, validated=True, **fields):
    organization = Organization(
        name=name,
        description=fields.pop('description', 'A guild of web developers'),
        created_by=owner.id,
        status=status,
        is_validated=validated,
        **fields,
    )
    db.session.add(organization)
    db.session.commit()
    return organization


def make_expedition(owner, title='Web Basics', organization=None, status=ContentStatus.PUBLISHED,
                    validated=True, **fields):
    expedition = Expedition(
        title=title,
        summary=fields.pop('summary', 'Start here'),
        description=fields.pop('description', 'The basics of the web'),
        thumbnail_url=fields.pop('thumbnail_url', 'https://img.example.com/web.png'),
        organization_id=organization.id if organization else None,
        created_by=owner.id,
        status=status,
        is_validated=validated,
        **fields,
    )
    db.session.add(expedition)
    db.session.commit()
    return expedition


def make_quest(owner, title='React Basics', expedition=None, organization=None,
               status=ContentStatus.PUBLISHED, validated=True, **fields):
    quest = Quest(
        title=title,
        summary=fields.pop('summary', 'Components and props'),
        description=fields.pop('description', 'Build your first component'),
        thumbnail_url=fields.pop('thumbnail_url', 'https://img.example.com/react.png'),
        link_url=fields.pop('link_url', 'https://react.dev/learn'),
        xp_reward=fields.pop('xp_reward', 100),
        expedition_id=expedition.id if expedition else None,
        organization_id=organization.id if organization else None,
        created_by=owner.id,
        status=status,
        is_validated=validated,
        **fields,
    )
    db.session.add(quest)
    db.session.commit()
    return quest


def add_progress(learner, quest, completed=False):
    progress = QuestProgress(user_id=learner.id, quest_id=quest.id, completed=completed)
    db.session.add(progress)
    db.session.commit()
    return progress


def quest_payload(**overrides):
    payload = {
        'title': 'Intro to TypeScript',
        'summary': 'Types for JavaScript',
        'description': 'Learn the type system',
        'thumbnail_url': 'https://img.example.com/ts.png',
        'link_url': 'https://www.typescriptlang.org/docs/',
        'xp_reward': 150,
    }
    payload.update(overrides)
    return payload


def login(client, user_id):
    with client.session_transaction() as sess:
        sess['_user_id'] = user_id
        sess['_fresh'] = True


@pytest.fixture
def users(ctx):
    """An admin, two contributors and a learner, created in the active context."""
    return {
        'admin': make_user('admin@example.com', role=UserRole.ADMIN),
        'owner': make_user('owner@example.com'),
        'contributor': make_user('contributor@example.com'),
        'learner': make_user('learner@example.com'),
    }
