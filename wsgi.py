"""
WSGI entrypoint for production servers.

Run with: gunicorn wsgi:app
"""

from agrihub import create_app

app = create_app()
