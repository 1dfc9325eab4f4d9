"""
WSGI entry point for the orchestration API (also used by ``flask db``).

Usage:
    gunicorn wsgi:app
    FLASK_APP=wsgi flask db upgrade
"""

from app import create_app

app = create_app()
