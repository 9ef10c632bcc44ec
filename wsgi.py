"""
Production WSGI entry point for Gunicorn.

Usage:
    gunicorn -w 1 -k gthread -b 0.0.0.0:$PORT wsgi:app

Use a single worker: the JSON store and weather cache live in one process.
"""

from verdantwise import create_app

# Gunicorn looks for a top-level 'app' variable here.
app = create_app()
