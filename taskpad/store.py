"""Relational store access for tasks, the admin allow-list and profiles."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .db import AdminDB, ProfileDB, TaskDB
from .errors import PersistError

logger = logging.getLogger(__name__)


def _provider_message(exc):
    orig = getattr(exc, 'orig', None)
    return str(orig or exc)


class TaskStore:
    def __init__(self, session):
        self.session = session

    def get(self, task_id):
        try:
            return self.session.get(TaskDB, task_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistError(_provider_message(e)) from e

    def insert(self, owner, text, image_url=None):
        task = TaskDB(user_id=owner, text=text, image_url=image_url)
        self.session.add(task)
        self._commit()
        return task

    def update(self, task, changes: dict):
        for field, value in changes.items():
            setattr(task, field, value)
        self._commit()
        return task

    def delete(self, task):
        self.session.delete(task)
        self._commit()

    def list(self, owner=None):
        # Same-timestamp rows fall back to id order so listings are stable
        stmt = select(TaskDB).order_by(TaskDB.created_at.desc(), TaskDB.id.desc())
        if owner is not None:
            stmt = stmt.where(TaskDB.user_id == owner)
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistError(_provider_message(e)) from e

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error('Task write failed: %s', e)
            raise PersistError(_provider_message(e)) from e


class AdminDirectory:
    def __init__(self, session):
        self.session = session

    def is_admin(self, user_id) -> bool:
        if not user_id:
            return False
        try:
            return self.session.get(AdminDB, user_id) is not None
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistError(_provider_message(e)) from e

    def grant(self, user_id):
        if self.session.get(AdminDB, user_id) is None:
            self.session.add(AdminDB(user_id=user_id))
            self.session.commit()

    def revoke(self, user_id):
        row = self.session.get(AdminDB, user_id)
        if row is not None:
            self.session.delete(row)
            self.session.commit()

    def all_ids(self):
        return list(self.session.scalars(select(AdminDB.user_id).order_by(AdminDB.user_id)))


class ProfileDirectory:
    def __init__(self, session):
        self.session = session

    def emails_for(self, user_ids):
        """One lookup for the whole set of owners: {user_id: email}."""
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        stmt = select(ProfileDB).where(ProfileDB.user_id.in_(ids))
        try:
            return {p.user_id: p.email for p in self.session.scalars(stmt)}
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistError(_provider_message(e)) from e
