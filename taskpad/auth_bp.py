import logging
import time

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from .db import ProfileDB, UserDB, db

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

# address|email -> timestamps of failed sign-ins
FAILED_LOGINS = {}


def _login_rate_limited(key):
    window = current_app.config['LOGIN_RATE_LIMIT_WINDOW']
    now = time.time()
    attempts = [t for t in FAILED_LOGINS.get(key, []) if now - t < window]
    if not attempts:
        FAILED_LOGINS.pop(key, None)
        return False, 0
    FAILED_LOGINS[key] = attempts
    if len(attempts) >= current_app.config['LOGIN_RATE_LIMIT_MAX']:
        return True, int(window - (now - attempts[0]))
    return False, 0


def _record_failed_login(key):
    FAILED_LOGINS.setdefault(key, []).append(time.time())


def _credentials():
    email = request.form.get('email', '').strip().lower()
    password = request.form.get('password', '')
    return email, password


def _find_user(email):
    return UserDB.query.filter(UserDB.email == email).first()


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    if current_user.is_authenticated:
        return redirect(url_for('tasks.dashboard'))
    if request.method == 'POST':
        email, password = _credentials()
        if not email or not password.strip():
            flash('Email and password required.')
            return render_template('register.html', email=email)
        if '@' not in email:
            flash('Enter a valid email address.')
            return render_template('register.html', email=email)
        if len(password) < current_app.config['MIN_PASSWORD_LENGTH']:
            flash(f"Password must be at least {current_app.config['MIN_PASSWORD_LENGTH']} characters.")
            return render_template('register.html', email=email)
        if _find_user(email):
            flash('User already registered.')
            return render_template('register.html', email=email)
        user = UserDB(email=email, password_hash=generate_password_hash(password))
        db.session.add(user)
        db.session.flush()
        db.session.add(ProfileDB(user_id=user.id, email=email))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            flash('User already registered.')
            return render_template('register.html', email=email)
        logger.info('Registered user %s', user.id)
        login_user(user)
        return redirect(url_for('tasks.dashboard'))
    return render_template('register.html', email='')


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('tasks.dashboard'))
    email = ''
    if request.method == 'POST':
        email, password = _credentials()
        if not email or not password.strip():
            flash('Email and password required.')
            return render_template('login.html', email=email)
        key = (request.remote_addr or 'unknown') + '|' + email
        limited, wait = _login_rate_limited(key)
        if limited:
            flash(f'Too many login attempts. Try again in ~{wait} seconds.')
            return render_template('login.html', email=email), 429
        user = _find_user(email)
        if user and check_password_hash(user.password_hash, password):
            FAILED_LOGINS.pop(key, None)
            login_user(user)
            return redirect(url_for('tasks.dashboard'))
        _record_failed_login(key)
        logger.info('Failed sign-in for %s', email)
        flash('Invalid login credentials.')
    return render_template('login.html', email=email)


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    flash('Signed out.')
    return redirect(url_for('auth.login'))
