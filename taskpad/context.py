"""Per-request handle carrying the caller's identity and the service objects.

Built once per request by ``get_request_context`` and passed explicitly into
every flow call.
"""
from dataclasses import dataclass

from flask import current_app, g
from flask_login import current_user

from .db import db
from .store import AdminDirectory, ProfileDirectory, TaskStore


@dataclass
class RequestContext:
    user_id: str | None
    email: str | None
    is_admin: bool
    tasks: TaskStore
    objects: object
    profiles: ProfileDirectory
    bucket: str
    max_image_bytes: int

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


def build_context(user_id, email, session, objects, bucket, max_image_bytes, admins=None):
    admins = admins or AdminDirectory(session)
    return RequestContext(
        user_id=user_id,
        email=email,
        is_admin=admins.is_admin(user_id),
        tasks=TaskStore(session),
        objects=objects,
        profiles=ProfileDirectory(session),
        bucket=bucket,
        max_image_bytes=max_image_bytes,
    )


def get_request_context() -> RequestContext:
    if 'taskpad_ctx' not in g:
        authed = current_user.is_authenticated
        g.taskpad_ctx = build_context(
            user_id=current_user.get_id() if authed else None,
            email=getattr(current_user, 'email', None) if authed else None,
            session=db.session,
            objects=current_app.extensions['taskpad.objects'],
            bucket=current_app.config['TASK_IMAGE_BUCKET'],
            max_image_bytes=current_app.config['MAX_IMAGE_BYTES'],
        )
    return g.taskpad_ctx
