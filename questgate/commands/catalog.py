"""Validation queue CLI commands."""

import click
from flask import current_app
from flask.cli import with_appcontext

from questgate.extensions import db
from questgate.models import CONTENT_MODELS, User
from questgate.services import similarity
from questgate.services.errors import WorkflowError
from questgate.services.validation import ValidationOrchestrator

KIND_CHOICE = click.Choice(sorted(CONTENT_MODELS))


@click.group('catalog')
def catalog_commands():
    """Catalog validation commands."""
    pass


@catalog_commands.command('pending')
@click.option('--kind', type=KIND_CHOICE, required=True)
@with_appcontext
def pending(kind):
    """List new submissions waiting for review, with likely duplicates."""
    items = ValidationOrchestrator().pending_submissions(kind)
    if not items:
        click.echo('Nothing pending.')
        return

    for item in items:
        click.echo(f'{item.entity.id}  {item.entity.display_name}')
        for match in item.suggestions:
            colour = 'red' if match.confidence == 'high' else 'yellow'
            click.echo(click.style(f'    ~ {match.name} ({match.score:.0%}) {match.id}', fg=colour))


@catalog_commands.command('drafts')
@click.option('--kind', type=KIND_CHOICE, required=True)
@with_appcontext
def drafts(kind):
    """List validated entities carrying a shadow draft."""
    items = ValidationOrchestrator().pending_drafts(kind)
    if not items:
        click.echo('No drafts pending.')
        return

    for item in items:
        click.echo(f'{item.entity.id}  {item.entity.display_name}  ({item.entity.edit_reason})')
        for change in item.changes:
            if change.changed:
                click.echo(f'    {change.field}: {change.before!r} -> {change.after!r}')


@catalog_commands.command('similar')
@click.option('--kind', type=KIND_CHOICE, required=True)
@click.option('--name', required=True, help='Candidate name to check')
@with_appcontext
def similar(kind, name):
    """Show validated names that look like NAME."""
    matches = similarity.suggest(
        name,
        ValidationOrchestrator().validated_names(kind),
        threshold=current_app.config['SIMILARITY_THRESHOLD'],
        top_k=current_app.config['SIMILARITY_TOP_K'],
        high_confidence=current_app.config['SIMILARITY_HIGH_CONFIDENCE'],
    )
    if not matches:
        click.echo('No similar names.')
        return
    for match in matches:
        click.echo(f'{match.score:.0%}  {match.name}  {match.id}  [{match.confidence}]')


@catalog_commands.command('approve')
@click.option('--kind', type=KIND_CHOICE, required=True)
@click.option('--id', 'entity_id', required=True)
@click.option('--as-email', 'admin_email', required=True, help='Administrator recorded in the audit log')
@with_appcontext
def approve(kind, entity_id, admin_email):
    """Approve a pending submission or shadow draft."""
    admin = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if not admin or not admin.is_admin:
        click.echo(click.style(f'Error: {admin_email} is not an administrator', fg='red'))
        return

    try:
        decision = ValidationOrchestrator().decide(kind, entity_id, 'approve', {}, admin)
    except WorkflowError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    click.echo(click.style(f'{kind} {entity_id}: {decision.outcome}', fg='green'))
