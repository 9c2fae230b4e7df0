import logging

import pytest

from taskpad.access import Scope
from taskpad.db import TaskDB, db
from taskpad.errors import Forbidden, NotAuthenticated, NotFound, PersistError, StorageError, ValidationError
from taskpad.object_paths import extract_object_key, public_url_for
from taskpad.task_flow import (
    FlowState,
    Keep,
    MutationFlow,
    Remove,
    Replace,
    add_task,
    delete_task,
    image_action_from_form,
    list_tasks,
    update_task,
)

from .conftest import at, png, seed_task

BASE = 'https://proj.supabase.co'


def url_of(key):
    return public_url_for(BASE, 'task-images', key)


def fetch(task_id):
    db.session.expire_all()
    return db.session.get(TaskDB, task_id)


# --- add_task ---

def test_add_without_image(make_ctx, objects):
    ctx = make_ctx('u1')
    outcome = add_task(ctx, '  buy milk  ')
    assert outcome.task.text == 'buy milk'
    assert outcome.trail == [FlowState.IDLE, FlowState.VALIDATING, FlowState.PERSISTING, FlowState.DONE]
    listing = list_tasks(make_ctx('u1'), Scope.OWN)
    assert [(r.task.text, r.task.image_url) for r in listing.rows] == [('buy milk', None)]
    assert objects.call_count == 0


def test_add_with_image_uploads_under_owner(make_ctx, objects, events):
    ctx = make_ctx('u1')
    outcome = add_task(ctx, 'photo task', png(name='cat.JPG', content_type='image/jpeg'))
    key = extract_object_key(outcome.task.image_url, 'task-images')
    assert key.startswith('u1/') and key.endswith('.jpg')
    assert objects.objects[key][1] == 'image/jpeg'
    assert outcome.trail == [FlowState.IDLE, FlowState.VALIDATING, FlowState.UPLOADING,
                             FlowState.PERSISTING, FlowState.DONE]
    # upload happens before the row references it
    assert events.index(('upload', key)) < events.index(('insert', 'u1'))


def test_add_oversized_image_creates_nothing(make_ctx, objects):
    ctx = make_ctx('u1')
    with pytest.raises(ValidationError):
        add_task(ctx, 'big', png(size=6 * 1024 * 1024))
    assert objects.upload_attempts == []
    assert ctx.tasks.calls == []
    assert TaskDB.query.count() == 0


def test_add_wrong_type_rejected(make_ctx, objects):
    with pytest.raises(ValidationError):
        add_task(make_ctx('u1'), 'doc', png(content_type='application/pdf'))
    assert objects.upload_attempts == []


@pytest.mark.parametrize('text', ['', '   ', '\n\t', None])
def test_add_empty_text_makes_no_calls(make_ctx, objects, text):
    ctx = make_ctx('u1')
    with pytest.raises(ValidationError):
        add_task(ctx, text, png())
    assert objects.call_count == 0
    assert ctx.tasks.calls == []


def test_add_upload_failure_aborts_before_persist(make_ctx, objects):
    objects.fail_upload = 'bucket not found'
    ctx = make_ctx('u1')
    with pytest.raises(StorageError, match='bucket not found'):
        add_task(ctx, 'x', png())
    assert 'insert' not in ctx.tasks.calls
    assert TaskDB.query.count() == 0


def test_add_persist_failure_is_reported(make_ctx, objects):
    ctx = make_ctx('u1')
    ctx.tasks.fail_on.add('insert')
    with pytest.raises(PersistError):
        add_task(ctx, 'x', png())
    assert objects.removals == []


def test_add_requires_user(make_ctx):
    with pytest.raises(NotAuthenticated):
        add_task(make_ctx(None), 'x')


# --- update_task ---

@pytest.mark.parametrize('prior', [None, url_of('u1/old.png')])
def test_keep_never_touches_image(make_ctx, objects, prior):
    task = seed_task('u1', 'before', image_url=prior)
    outcome = update_task(make_ctx('u1'), task.id, 'after', Keep())
    fresh = fetch(task.id)
    assert fresh.text == 'after'
    assert fresh.image_url == prior
    assert objects.call_count == 0
    assert FlowState.CLEANING_UP not in outcome.trail


def test_no_action_means_keep(make_ctx, objects):
    task = seed_task('u1', 'before', image_url=url_of('u1/old.png'))
    update_task(make_ctx('u1'), task.id, 'after')
    assert fetch(task.id).image_url == url_of('u1/old.png')
    assert objects.call_count == 0


def test_remove_clears_and_deletes_old_object(make_ctx, objects):
    task = seed_task('u1', 'with image', image_url=url_of('u1/old.png'))
    outcome = update_task(make_ctx('u1'), task.id, 'with image', Remove())
    assert fetch(task.id).image_url is None
    assert objects.removals == [['u1/old.png']]
    assert outcome.trail[-2:] == [FlowState.CLEANING_UP, FlowState.DONE]


def test_remove_without_prior_image(make_ctx, objects):
    task = seed_task('u1', 'plain')
    update_task(make_ctx('u1'), task.id, 'plain', Remove())
    assert fetch(task.id).image_url is None
    assert objects.removals == []


def test_replace_uploads_then_persists_then_cleans_up(make_ctx, objects, events):
    old_key = 'u1/old.png'
    task = seed_task('u1', 'pic', image_url=url_of(old_key))
    outcome = update_task(make_ctx('u1'), task.id, 'pic v2', Replace(png(name='new.webp', content_type='image/webp')))

    new_key = extract_object_key(fetch(task.id).image_url, 'task-images')
    assert new_key != old_key
    assert new_key.startswith('u1/') and new_key.endswith('.webp')
    assert [r for r in objects.removals if old_key in r] == [[old_key]]
    assert events.index(('upload', new_key)) < events.index(('update', task.id)) < events.index(('remove', (old_key,)))
    assert outcome.trail == [FlowState.IDLE, FlowState.VALIDATING, FlowState.UPLOADING,
                             FlowState.PERSISTING, FlowState.CLEANING_UP, FlowState.DONE]
    assert outcome.cleanup_error is None


@pytest.mark.parametrize('text', ['', '   '])
def test_update_blank_text_makes_no_calls(make_ctx, objects, text):
    task = seed_task('u1', 'keep me', image_url=url_of('u1/old.png'))
    ctx = make_ctx('u1')
    with pytest.raises(ValidationError):
        update_task(ctx, task.id, text, Replace(png()))
    assert ctx.tasks.calls == []
    assert objects.call_count == 0
    assert fetch(task.id).text == 'keep me'


def test_update_invalid_image_makes_no_calls(make_ctx, objects):
    task = seed_task('u1', 'keep me')
    ctx = make_ctx('u1')
    with pytest.raises(ValidationError):
        update_task(ctx, task.id, 'new', Replace(png(size=6 * 1024 * 1024)))
    assert ctx.tasks.calls == []
    assert objects.call_count == 0


def test_update_persist_failure_keeps_old_object(make_ctx, objects):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    ctx = make_ctx('u1')
    ctx.tasks.fail_on.add('update')
    with pytest.raises(PersistError):
        update_task(ctx, task.id, 'pic v2', Replace(png()))
    assert objects.removals == []
    fresh = fetch(task.id)
    assert fresh.text == 'pic'
    assert fresh.image_url == url_of('u1/old.png')


def test_update_upload_failure_leaves_row_alone(make_ctx, objects):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    objects.fail_upload = 'quota exceeded'
    ctx = make_ctx('u1')
    with pytest.raises(StorageError):
        update_task(ctx, task.id, 'pic v2', Replace(png()))
    assert 'update' not in ctx.tasks.calls
    assert fetch(task.id).text == 'pic'


def test_cleanup_failure_is_swallowed(make_ctx, objects, caplog):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    objects.fail_remove = 'network down'
    with caplog.at_level(logging.WARNING, logger='taskpad.task_flow'):
        outcome = update_task(make_ctx('u1'), task.id, 'pic', Remove())
    assert outcome.cleanup_error == 'network down'
    assert outcome.trail[-1] is FlowState.DONE
    assert fetch(task.id).image_url is None
    assert 'Could not remove old image' in caplog.text


def test_foreign_key_in_url_is_never_deleted(make_ctx, objects):
    # a stale or forged URL pointing into another owner's prefix
    task = seed_task('u1', 'pic', image_url=url_of('u2/their.png'))
    outcome = update_task(make_ctx('u1'), task.id, 'pic', Remove())
    assert objects.removals == []
    assert outcome.cleanup_error is None
    assert fetch(task.id).image_url is None


def test_other_user_cannot_update(make_ctx, objects):
    task = seed_task('u1', 'mine')
    with pytest.raises(Forbidden):
        update_task(make_ctx('u2'), task.id, 'hijacked', Replace(png()))
    assert objects.upload_attempts == []
    assert fetch(task.id).text == 'mine'


def test_admin_replacement_stays_under_owner_prefix(make_ctx, objects):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    update_task(make_ctx('a1'), task.id, 'moderated', Replace(png()))
    new_key = extract_object_key(fetch(task.id).image_url, 'task-images')
    assert new_key.startswith('u1/')
    assert objects.removals == [['u1/old.png']]


def test_update_missing_task(make_ctx):
    with pytest.raises(NotFound):
        update_task(make_ctx('u1'), 'does-not-exist', 'x')
    with pytest.raises(ValidationError):
        update_task(make_ctx('u1'), '', 'x')


def test_update_rejects_unknown_action(make_ctx):
    task = seed_task('u1', 'x')
    with pytest.raises(TypeError):
        update_task(make_ctx('u1'), task.id, 'x', 'remove')


# --- delete_task ---

def test_owner_delete_removes_object_then_row(make_ctx, objects, events):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    task_id = task.id
    outcome = delete_task(make_ctx('u1'), task_id)
    assert fetch(task_id) is None
    assert objects.removals == [['u1/old.png']]
    assert events.index(('remove', ('u1/old.png',))) < events.index(('delete', task_id))
    assert outcome.trail[-1] is FlowState.DONE


def test_admin_deletes_someone_elses_task(make_ctx, objects):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    task_id = task.id
    delete_task(make_ctx('a1'), task_id)
    assert objects.removals == [['u1/old.png']]
    assert list_tasks(make_ctx('u1'), Scope.OWN).rows == []


def test_non_owner_delete_forbidden(make_ctx, objects):
    task = seed_task('u1', 'mine', image_url=url_of('u1/old.png'))
    with pytest.raises(Forbidden):
        delete_task(make_ctx('u2'), task.id)
    assert fetch(task.id) is not None
    assert objects.removals == []


def test_delete_missing_task(make_ctx):
    with pytest.raises(NotFound):
        delete_task(make_ctx('u1'), 'nope')


def test_delete_survives_object_removal_failure(make_ctx, objects):
    task = seed_task('u1', 'pic', image_url=url_of('u1/old.png'))
    task_id = task.id
    objects.fail_remove = 'timeout'
    outcome = delete_task(make_ctx('u1'), task_id)
    assert outcome.cleanup_error == 'timeout'
    assert fetch(task_id) is None


# --- list_tasks ---

def test_listing_order_and_tie_break(make_ctx):
    seed_task('u1', 'oldest', created_at=at(1), task_id='t-1')
    seed_task('u1', 'tie a', created_at=at(5), task_id='t-a')
    seed_task('u1', 'tie b', created_at=at(5), task_id='t-b')
    seed_task('u1', 'newest', created_at=at(9), task_id='t-9')
    rows = list_tasks(make_ctx('u1')).rows
    assert [r.task.id for r in rows] == ['t-9', 't-b', 't-a', 't-1']


def test_non_admin_all_is_own(make_ctx):
    seed_task('u1', 'u1 task', created_at=at(1))
    seed_task('u2', 'u2 task', created_at=at(2))
    ctx = make_ctx('u2')
    everything = list_tasks(ctx, Scope.ALL)
    own = list_tasks(ctx, Scope.OWN)
    assert everything.view.scope is Scope.OWN
    assert not everything.view.is_admin
    assert [r.task.id for r in everything.rows] == [r.task.id for r in own.rows]
    assert [r.task.text for r in everything.rows] == ['u2 task']
    assert ctx.profiles.lookups == []


def test_admin_all_labels_owners_with_one_lookup(make_ctx):
    seed_task('u1', 'one', created_at=at(1))
    seed_task('u2', 'two', created_at=at(2))
    seed_task('u1', 'three', created_at=at(3))
    seed_task('ghost', 'orphan', created_at=at(4))
    ctx = make_ctx('a1')
    listing = list_tasks(ctx, Scope.ALL)
    assert listing.view.scope is Scope.ALL and listing.view.is_admin
    assert [(r.task.text, r.owner_email) for r in listing.rows] == [
        ('orphan', None),
        ('three', 'u1@example.com'),
        ('two', 'u2@example.com'),
        ('one', 'u1@example.com'),
    ]
    assert ctx.profiles.lookups == [['ghost', 'u1', 'u2']]


def test_admin_own_scope(make_ctx):
    seed_task('u1', 'one')
    seed_task('a1', 'admin task')
    listing = list_tasks(make_ctx('a1'), Scope.OWN)
    assert [r.task.text for r in listing.rows] == ['admin task']
    assert listing.view.is_admin


def test_listing_requires_user(make_ctx):
    with pytest.raises(NotAuthenticated):
        list_tasks(make_ctx(None), Scope.ALL)


# --- helpers ---

def test_image_action_from_form():
    upload = png()
    assert image_action_from_form(upload, True) == Replace(upload)
    assert image_action_from_form(None, True) == Remove()
    assert image_action_from_form(None, False) == Keep()


def test_flow_records_failure():
    flow = MutationFlow('probe')
    with pytest.raises(RuntimeError):
        with flow:
            flow.enter(FlowState.VALIDATING)
            flow.enter(FlowState.UPLOADING)
            raise RuntimeError('boom')
    assert flow.trail == [FlowState.IDLE, FlowState.VALIDATING, FlowState.UPLOADING, FlowState.FAILED]
    assert flow.state is FlowState.FAILED
