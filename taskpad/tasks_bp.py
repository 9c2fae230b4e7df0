import logging

from flask import Blueprint, abort, current_app, flash, jsonify, redirect, render_template, request, url_for
from flask_login import login_required
from werkzeug.exceptions import RequestEntityTooLarge

from .access import Scope, can_mutate, resolve_view
from .context import get_request_context
from .errors import ImageTooLarge, NotAuthenticated, TaskError
from .image_validator import ImageUpload
from .task_flow import TaskListing, add_task, delete_task, image_action_from_form, list_tasks, update_task

logger = logging.getLogger(__name__)

tasks_bp = Blueprint('tasks', __name__)


def _view_arg():
    return Scope.parse(request.values.get('view'))


def _dashboard_url(scope=None):
    scope = scope or _view_arg()
    if scope is Scope.ALL:
        return url_for('tasks.dashboard', view=Scope.ALL.value)
    return url_for('tasks.dashboard')


def _safe_return_to(raw):
    # Same-site relative paths only
    if raw and raw.startswith('/') and not raw.startswith('//') and '\\' not in raw:
        return raw
    return None


def _upload_from_request():
    return ImageUpload.from_file_storage(request.files.get('image'))


@tasks_bp.route('/tasks', methods=['GET'])
@login_required
def dashboard():
    ctx = get_request_context()
    try:
        listing = list_tasks(ctx, _view_arg())
    except NotAuthenticated as e:
        flash(e.message)
        return redirect(url_for('auth.login'))
    except TaskError as e:
        # listing failed; show the banner over an empty board
        flash(e.message)
        listing = TaskListing(view=resolve_view(ctx, _view_arg()), rows=[])
    editing = request.args.get('edit')
    return render_template('tasks.html', listing=listing, view=listing.view, editing=editing, ctx=ctx)


@tasks_bp.post('/tasks')
@login_required
def create_task():
    ctx = get_request_context()
    try:
        add_task(ctx, request.form.get('text', ''), _upload_from_request())
        flash('Task added.')
    except TaskError as e:
        flash(e.message)
    return redirect(_dashboard_url())


@tasks_bp.get('/tasks/<task_id>/edit')
@login_required
def edit_task(task_id):
    ctx = get_request_context()
    try:
        task = ctx.tasks.get(task_id)
    except TaskError as e:
        flash(e.message)
        return redirect(_dashboard_url())
    if task is None:
        abort(404)
    if not can_mutate(ctx, task):
        abort(403)
    return_to = _safe_return_to(request.args.get('return_to')) or _dashboard_url()
    return render_template('edit_task.html', task=task, return_to=return_to)


@tasks_bp.post('/tasks/<task_id>/update')
@login_required
def update_task_route(task_id):
    ctx = get_request_context()
    return_to = _safe_return_to(request.form.get('return_to')) or _dashboard_url()
    action = image_action_from_form(_upload_from_request(), request.form.get('remove_image') == '1')
    try:
        outcome = update_task(ctx, task_id, request.form.get('text', ''), action)
    except TaskError as e:
        flash(e.message)
        return redirect(return_to)
    if outcome.cleanup_error:
        logger.warning('Task %s saved; old image left behind: %s', task_id, outcome.cleanup_error)
    flash('Task updated.')
    return redirect(return_to)


@tasks_bp.post('/tasks/<task_id>/delete')
@login_required
def delete_task_route(task_id):
    ctx = get_request_context()
    try:
        delete_task(ctx, task_id)
        flash('Task deleted.')
    except TaskError as e:
        flash(e.message)
    return redirect(_dashboard_url())


@tasks_bp.route('/tasks.json')
@login_required
def tasks_json():
    ctx = get_request_context()
    try:
        listing = list_tasks(ctx, _view_arg())
    except TaskError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({
        'success': True,
        'view': listing.view.scope.value,
        'is_admin': listing.view.is_admin,
        'tasks': [dict(row.task.to_dict(), owner_email=row.owner_email) for row in listing.rows],
    })


@tasks_bp.app_errorhandler(RequestEntityTooLarge)
def body_too_large(e):
    # The form body is never parsed here, so the view comes from the query string only.
    limit = current_app.config['MAX_IMAGE_BYTES']
    logger.info('Rejected %s %s: body over MAX_CONTENT_LENGTH', request.method, request.path)
    flash(ImageTooLarge(request.content_length or 0, limit).message)
    return redirect(_dashboard_url(Scope.parse(request.args.get('view'))))
