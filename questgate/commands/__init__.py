"""CLI commands for QuestGate."""

from .catalog import catalog_commands
from .user import user_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(catalog_commands)
    app.cli.add_command(user_commands)
