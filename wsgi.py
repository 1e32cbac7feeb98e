"""
WSGI entry point and Flask CLI target.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi dispatch-notifications --include-failed

APP_ENV selects the config class (development / testing / production).
"""

from app import create_app

app = create_app()
