#!/usr/bin/env python3
"""Development server runner for QuestGate."""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def setup_environment():
    """Set up the development environment."""
    project_root = Path(__file__).parent

    env_file = project_root / '.env'
    if env_file.exists():
        load_dotenv(env_file)
        print(f"Loaded environment from {env_file}")
    else:
        print(f"No .env file found at {env_file}")

    os.environ.setdefault('FLASK_APP', 'questgate:create_app')
    os.environ.setdefault('FLASK_DEBUG', '1')


def initialize_database(app):
    """Create the schema when running against a fresh development database."""
    from questgate.extensions import db

    with app.app_context():
        db.create_all()
    print("Database tables ready")


def run_development_server():
    """Run the Flask development server."""
    from questgate import create_app

    app = create_app()
    initialize_database(app)

    print("\n" + "=" * 60)
    print("Starting QuestGate Development Server")
    print("=" * 60)
    print(f"Debug mode: {os.environ.get('FLASK_DEBUG', '0') == '1'}")
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"Cache tags: {app.config.get('REDIS_URL') or 'log only (REDIS_URL unset)'}")
    print("\nCreate an administrator in another terminal:")
    print("   flask user create --email admin@example.com --password change-me --admin")
    print("\nThen review the queue:")
    print("   flask catalog pending --kind quest")
    print("=" * 60)

    app.run(
        host='0.0.0.0',
        port=5000,
        debug=True,
        use_reloader=True
    )


def main():
    """Main function to set up and run the development server."""
    setup_environment()

    try:
        run_development_server()
    except KeyboardInterrupt:
        print("\n\nDevelopment server stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
