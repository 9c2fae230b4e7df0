import logging
import os

import pytz
from flask import Flask, redirect, url_for
from flask_login import LoginManager, current_user

from .config import Config, TestingConfig
from .db import UserDB, db
from .logging_setup import configure_logging
from .storage import make_object_store

logger = logging.getLogger(__name__)

login_manager = LoginManager()
login_manager.login_view = 'auth.login'
login_manager.login_message = 'Please sign in to continue.'


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(UserDB, user_id)


def create_app(testing=False, config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(TestingConfig if testing else Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config['LOG_LEVEL'])
    db.init_app(app)
    login_manager.init_app(app)

    if app.config['STORAGE_BACKEND'] == 'local':
        os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    app.extensions['taskpad.objects'] = make_object_store(app.config)

    from .auth_bp import auth_bp
    from .storage_bp import storage_bp
    from .tasks_bp import tasks_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(storage_bp)

    from .cli import register_cli
    register_cli(app)

    tz = pytz.timezone(app.config['DISPLAY_TIMEZONE'])

    @app.template_filter('localtime')
    def localtime(value):
        if value is None:
            return ''
        if value.tzinfo is None:
            value = pytz.utc.localize(value)
        return value.astimezone(tz).strftime('%Y-%m-%d %H:%M')

    with app.app_context():
        db.create_all()

    @app.get('/')
    def index():
        if current_user.is_authenticated:
            return redirect(url_for('tasks.dashboard'))
        return redirect(url_for('auth.login'))

    logger.info('taskpad started (storage=%s, bucket=%s)', app.config['STORAGE_BACKEND'], app.config['TASK_IMAGE_BUCKET'])
    return app
