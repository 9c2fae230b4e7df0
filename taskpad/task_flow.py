"""Add, edit, delete and list tasks, including the image lifecycle.

A mutation runs as one sequential flow::

    IDLE -> VALIDATING -> UPLOADING? -> PERSISTING -> CLEANING_UP? -> DONE

and ends in FAILED when any step raises. The new object is uploaded before the
row references it, and the old object is only deleted once the row no longer
does. Removing an old object is best-effort: failures are logged and returned
on the outcome, never raised.
"""
import enum
import logging
from dataclasses import dataclass, field

from .access import Scope, View, require_mutation, resolve_view
from .errors import NotAuthenticated, NotFound, ValidationError
from .image_validator import ImageUpload, validate
from .object_paths import build_object_key, extension_of, extract_object_key, key_belongs_to

logger = logging.getLogger(__name__)


# --- Image actions ---

@dataclass(frozen=True)
class Keep:
    pass


@dataclass(frozen=True)
class Replace:
    upload: ImageUpload


@dataclass(frozen=True)
class Remove:
    pass


ImageAction = Keep | Replace | Remove


def image_action_from_form(upload, remove_flag) -> ImageAction:
    """A chosen file wins over the remove flag; neither means keep."""
    if upload is not None:
        return Replace(upload)
    if remove_flag:
        return Remove()
    return Keep()


# --- Flow bookkeeping ---

class FlowState(enum.Enum):
    IDLE = 'idle'
    VALIDATING = 'validating'
    UPLOADING = 'uploading'
    PERSISTING = 'persisting'
    CLEANING_UP = 'cleaning_up'
    DONE = 'done'
    FAILED = 'failed'


class MutationFlow:
    def __init__(self, name, task_id=None):
        self.name = name
        self.task_id = task_id
        self.state = FlowState.IDLE
        self.trail = [FlowState.IDLE]

    def enter(self, state: FlowState):
        logger.debug('%s[%s]: %s -> %s', self.name, self.task_id or '-', self.state.value, state.value)
        self.state = state
        self.trail.append(state)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is not None:
            failed_in = self.state
            self.enter(FlowState.FAILED)
            logger.info('%s[%s] failed while %s: %s', self.name, self.task_id or '-', failed_in.value, exc)
        return False


@dataclass
class MutationOutcome:
    task: object
    trail: list = field(default_factory=list)
    cleanup_error: str | None = None


@dataclass(frozen=True)
class TaskRow:
    task: object
    owner_email: str | None = None


@dataclass(frozen=True)
class TaskListing:
    view: View
    rows: list

    def __len__(self):
        return len(self.rows)


# --- Helpers ---

def _clean_text(text):
    text = (text or '').strip()
    if not text:
        raise ValidationError('Task text required.')
    return text


def _require_user(ctx):
    if not ctx.is_authenticated:
        raise NotAuthenticated()


def _load(ctx, task_id):
    if not task_id:
        raise ValidationError('Missing task id.')
    task = ctx.tasks.get(task_id)
    if task is None:
        raise NotFound()
    return task


def _upload_for(ctx, owner, upload: ImageUpload):
    key = build_object_key(owner, extension_of(upload.filename))
    ctx.objects.upload(key, upload.data, upload.content_type or 'image/jpeg')
    logger.info('Uploaded image %s for %s', key, owner)
    return key, ctx.objects.public_url(key)


def _remove_old_image(ctx, image_url, owner):
    key = extract_object_key(image_url, ctx.bucket)
    if not key_belongs_to(key, owner):
        logger.warning('Not removing %r: key is not under %s/', image_url, owner)
        return None
    try:
        ctx.objects.remove([key])
    except Exception as e:
        logger.warning('Could not remove old image %s: %s', key, e)
        return str(e)
    logger.info('Removed image %s', key)
    return None


# --- Operations ---

def add_task(ctx, text, upload: ImageUpload | None = None) -> MutationOutcome:
    with MutationFlow('add_task') as flow:
        flow.enter(FlowState.VALIDATING)
        _require_user(ctx)
        text = _clean_text(text)
        if upload is not None:
            validate(upload, ctx.max_image_bytes)

        image_url = None
        new_key = None
        if upload is not None:
            flow.enter(FlowState.UPLOADING)
            new_key, image_url = _upload_for(ctx, ctx.user_id, upload)

        flow.enter(FlowState.PERSISTING)
        try:
            task = ctx.tasks.insert(ctx.user_id, text, image_url)
        except Exception:
            if new_key:
                logger.warning('Insert failed after upload; %s is unreferenced', new_key)
            raise
        flow.task_id = task.id
        flow.enter(FlowState.DONE)
    return MutationOutcome(task=task, trail=flow.trail)


def update_task(ctx, task_id, text, action: ImageAction | None = None) -> MutationOutcome:
    if action is None:
        action = Keep()
    with MutationFlow('update_task', task_id) as flow:
        flow.enter(FlowState.VALIDATING)
        _require_user(ctx)
        text = _clean_text(text)
        if isinstance(action, Replace):
            validate(action.upload, ctx.max_image_bytes)
        elif not isinstance(action, (Keep, Remove)):
            raise TypeError(f'Unsupported image action: {action!r}')

        task = _load(ctx, task_id)
        require_mutation(ctx, task)
        owner = task.user_id
        old_url = task.image_url

        changes = {'text': text}
        new_key = None
        if isinstance(action, Replace):
            flow.enter(FlowState.UPLOADING)
            # Stored under the owner's prefix even when an admin is editing
            new_key, changes['image_url'] = _upload_for(ctx, owner, action.upload)
        elif isinstance(action, Remove):
            changes['image_url'] = None

        flow.enter(FlowState.PERSISTING)
        try:
            ctx.tasks.update(task, changes)
        except Exception:
            if new_key:
                logger.warning('Update failed after upload; %s is unreferenced', new_key)
            raise

        cleanup_error = None
        if 'image_url' in changes and old_url:
            flow.enter(FlowState.CLEANING_UP)
            cleanup_error = _remove_old_image(ctx, old_url, owner)
        flow.enter(FlowState.DONE)
    return MutationOutcome(task=task, trail=flow.trail, cleanup_error=cleanup_error)


def delete_task(ctx, task_id) -> MutationOutcome:
    with MutationFlow('delete_task', task_id) as flow:
        flow.enter(FlowState.VALIDATING)
        _require_user(ctx)
        task = _load(ctx, task_id)
        require_mutation(ctx, task)

        # Object first, then the row that references it
        cleanup_error = None
        if task.image_url:
            flow.enter(FlowState.CLEANING_UP)
            cleanup_error = _remove_old_image(ctx, task.image_url, task.user_id)

        flow.enter(FlowState.PERSISTING)
        ctx.tasks.delete(task)
        flow.enter(FlowState.DONE)
    return MutationOutcome(task=task, trail=flow.trail, cleanup_error=cleanup_error)


def list_tasks(ctx, scope: Scope = Scope.OWN) -> TaskListing:
    view = resolve_view(ctx, scope)
    if view.scope is Scope.ALL:
        tasks = ctx.tasks.list()
        emails = ctx.profiles.emails_for(t.user_id for t in tasks)
    else:
        tasks = ctx.tasks.list(owner=ctx.user_id)
        emails = {}
    return TaskListing(view=view, rows=[TaskRow(task=t, owner_email=emails.get(t.user_id)) for t in tasks])
