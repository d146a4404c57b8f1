"""
WSGI entry point.

Usage:
    gunicorn "server.wsgi:app" --workers 1 --threads 8
    python -m server.wsgi

Run a single worker process with the in-memory session store; set
SESSION_STORE=redis before scaling out.
"""

import os

from server.app import create_app

app = create_app()


if __name__ == "__main__":
    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8080")),
        debug=False,
        use_reloader=False,
    )
