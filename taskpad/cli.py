"""Admin allow-list management: ``flask --app taskpad <command>``."""
import click

from .db import UserDB, db
from .store import AdminDirectory


def _user_by_email(email):
    user = UserDB.query.filter(UserDB.email == email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f'No user registered with {email}')
    return user


def register_cli(app):
    @app.cli.command('init-db')
    def init_db():
        """Create any missing tables."""
        db.create_all()
        click.echo('Database ready.')

    @app.cli.command('grant-admin')
    @click.argument('email')
    def grant_admin(email):
        user = _user_by_email(email)
        AdminDirectory(db.session).grant(user.id)
        click.echo(f'{user.email} is now an admin.')

    @app.cli.command('revoke-admin')
    @click.argument('email')
    def revoke_admin(email):
        user = _user_by_email(email)
        AdminDirectory(db.session).revoke(user.id)
        click.echo(f'{user.email} is no longer an admin.')

    @app.cli.command('list-admins')
    def list_admins():
        ids = AdminDirectory(db.session).all_ids()
        if not ids:
            click.echo('No admins.')
            return
        emails = {u.id: u.email for u in UserDB.query.filter(UserDB.id.in_(ids))}
        for uid in ids:
            click.echo(f"{uid}\t{emails.get(uid, '(unknown user)')}")
