"""
WSGI entry point for the duty rotation planner.

Exposes the Flask application from ``app.py`` as a top-level ``app`` object
for a WSGI server such as gunicorn::

    gunicorn wsgi:app

"""

from app import app  # type: ignore  # pragma: no cover

__all__ = ["app"]
