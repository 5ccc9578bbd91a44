"""User management CLI commands."""

import click
from flask.cli import with_appcontext

from questgate.extensions import db
from questgate.models import User, UserRole


def _get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=email.strip().lower()).first()


@click.group('user')
def user_commands():
    """User management commands."""
    pass


@user_commands.command('create')
@click.option('--email', required=True, help='User email')
@click.option('--password', required=True, help='User password')
@click.option('--username', default=None, help='Display name')
@click.option('--admin', is_flag=True, default=False, help='Grant administrator role')
@with_appcontext
def create_user(email, password, username, admin):
    """Create a user."""
    if _get_user_by_email(email):
        click.echo(click.style(f'Error: User with email "{email}" already exists', fg='red'))
        return

    role = UserRole.ADMIN if admin else UserRole.CONTRIBUTOR
    user = User(email=email.strip().lower(), username=username, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    click.echo(click.style('User created successfully!', fg='green'))
    click.echo(f'  Email: {user.email}')
    click.echo(f'  Role: {role.value}')


@user_commands.command('promote')
@click.option('--email', required=True, help='User email')
@with_appcontext
def promote_user(email):
    """Grant the administrator role to an existing user."""
    user = _get_user_by_email(email)
    if not user:
        click.echo(click.style(f'Error: No user {email} found', fg='red'))
        return

    user.role = UserRole.ADMIN
    db.session.commit()
    click.echo(click.style(f'{user.email} is now an administrator.', fg='green'))
