import os
import tempfile

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Use environment variable for secret key (fallback only for dev)
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-insecure-change-me')
    SQLALCHEMY_DATABASE_URI = os.environ.get('TASKPAD_DATABASE_URL') or 'sqlite:///' + os.path.join(BASE_DIR, 'taskpad.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    TASK_IMAGE_BUCKET = os.environ.get('TASK_IMAGE_BUCKET', 'task-images')
    MAX_IMAGE_BYTES = _env_int('MAX_IMAGE_BYTES', 5 * 1024 * 1024)
    # Reject request bodies well past the image limit before they are parsed
    MAX_CONTENT_LENGTH = MAX_IMAGE_BYTES * 2

    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'local')
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or os.path.join(BASE_DIR, 'static', 'uploads')
    PUBLIC_BASE_URL = os.environ.get('PUBLIC_BASE_URL', '')
    SUPABASE_URL = os.environ.get('SUPABASE_URL', '')
    SUPABASE_KEY = os.environ.get('SUPABASE_KEY', '')

    DISPLAY_TIMEZONE = os.environ.get('DISPLAY_TIMEZONE', 'UTC')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    LOGIN_RATE_LIMIT_WINDOW = _env_int('LOGIN_RATE_LIMIT_WINDOW', 600)
    LOGIN_RATE_LIMIT_MAX = _env_int('LOGIN_RATE_LIMIT_MAX', 5)
    MIN_PASSWORD_LENGTH = 6


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    STORAGE_BACKEND = 'local'
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), 'taskpad-test-uploads')
    PUBLIC_BASE_URL = 'http://localhost'
    LOG_LEVEL = 'DEBUG'
