import uuid
from datetime import datetime, UTC

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance
db = SQLAlchemy()


def _new_id():
    return str(uuid.uuid4())


def _now():
    return datetime.now(UTC)


class UserDB(db.Model, UserMixin):
    __tablename__ = 'users'
    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    email = db.Column(db.String(320), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=_now)


class TaskDB(db.Model):
    __tablename__ = 'tasks'
    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_now, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'text': self.text,
            'image_url': self.image_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# Admin allow-list: a row grants elevated privilege
class AdminDB(db.Model):
    __tablename__ = 'admins'
    user_id = db.Column(db.String(64), primary_key=True)


# Owner labels for the all-tasks view
class ProfileDB(db.Model):
    __tablename__ = 'profiles'
    user_id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(320))
