"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-taxonomy
    gunicorn wsgi:app
"""

from dealroom import create_app

app = create_app()
