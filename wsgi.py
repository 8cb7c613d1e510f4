"""
Flask / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi categories list
    flask --app wsgi stages list 2
"""

from stageforms import create_app

app = create_app()
