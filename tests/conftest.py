from datetime import datetime, timedelta, UTC

import pytest
from werkzeug.security import generate_password_hash

from taskpad import create_app
from taskpad.auth_bp import FAILED_LOGINS
from taskpad.context import RequestContext
from taskpad.db import AdminDB, ProfileDB, TaskDB, UserDB, db
from taskpad.image_validator import ImageUpload, MAX_IMAGE_BYTES

from .fakes import RecordingObjectStore, RecordingProfileDirectory, RecordingTaskStore

PASSWORD = 'Secret123!'


@pytest.fixture()
def app(tmp_path):
    app = create_app(testing=True, config_overrides={'UPLOAD_FOLDER': str(tmp_path / 'uploads')})
    FAILED_LOGINS.clear()
    with app.app_context():
        db.drop_all()
        db.create_all()
        _seed_users()
    yield app


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


def _seed_users():
    for uid, email in [('u1', 'u1@example.com'), ('u2', 'u2@example.com'), ('a1', 'admin@example.com')]:
        db.session.add(UserDB(id=uid, email=email, password_hash=generate_password_hash(PASSWORD)))
        db.session.add(ProfileDB(user_id=uid, email=email))
    db.session.add(AdminDB(user_id='a1'))
    db.session.commit()


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def objects(events):
    return RecordingObjectStore(log=events)


@pytest.fixture()
def make_ctx(app_ctx, objects, events):
    """Build a RequestContext for a user id (None for anonymous) with recording fakes."""
    def _make(user_id, is_admin=None):
        if is_admin is None:
            is_admin = user_id is not None and db.session.get(AdminDB, user_id) is not None
        return RequestContext(
            user_id=user_id,
            email=f'{user_id}@example.com' if user_id else None,
            is_admin=is_admin,
            tasks=RecordingTaskStore(db.session, log=events),
            objects=objects,
            profiles=RecordingProfileDirectory(db.session),
            bucket='task-images',
            max_image_bytes=MAX_IMAGE_BYTES,
        )
    return _make


def png(size=64, name='photo.PNG', content_type='image/png'):
    return ImageUpload(filename=name, content_type=content_type, data=b'\x89PNG' + b'0' * max(size - 4, 0))


def seed_task(owner, text='task', image_url=None, created_at=None, task_id=None):
    task = TaskDB(user_id=owner, text=text, image_url=image_url,
                  created_at=created_at or datetime.now(UTC))
    if task_id:
        task.id = task_id
    db.session.add(task)
    db.session.commit()
    return task


def at(minutes):
    return datetime(2026, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes)


def login(client, email, password=PASSWORD):
    return client.post('/login', data={'email': email, 'password': password}, follow_redirects=False)
