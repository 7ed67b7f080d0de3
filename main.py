"""
main.py: server launcher and entry point.

Run this file to start the scheduling API:

    python main.py

API docs are served at http://127.0.0.1:8000/docs

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import uvicorn

from meeting_scheduler.utils.config import get_settings


def main() -> None:
    """Start the meeting scheduler API server."""
    settings = get_settings()
    print("=" * 60)
    print(f"  {settings.app_name} v{settings.app_version}")
    print("=" * 60)
    print(f"  Server  : http://{settings.http_host}:{settings.http_port}")
    print(f"  API docs: http://{settings.http_host}:{settings.http_port}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    uvicorn.run(
        "app:app",
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
