"""
Local development entry point.

Creates the Flask app via create_app() and runs the dev server on port 5000.
Set APP_CONFIG=agrihub.config.DevConfig for relaxed dev settings.
"""

from agrihub import create_app

app = create_app()

if __name__ == "__main__":
    # For local dev only; use gunicorn (see wsgi.py) in production.
    app.run(debug=True, port=5000)
