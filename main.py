"""
main.py: Server launcher and entry point.

Run this file to start the Sessionboard scheduling API:

    python main.py

Interactive API docs are served at http://127.0.0.1:8000/docs

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import argparse

import uvicorn


HOST = "127.0.0.1"
PORT = 8000


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Sessionboard scheduling API")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable hot reload (use in production)",
    )
    return parser.parse_args()


def main() -> None:
    """Start the API server."""
    args = _parse_args()
    print("=" * 60)
    print("  Sessionboard: Auto-Scheduling API")
    print("=" * 60)
    print(f"  Server  : http://{args.host}:{args.port}")
    print(f"  API docs: http://{args.host}:{args.port}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Blocks until CTRL+C
    uvicorn.run(
        "app:app",       # points to app.py → app object
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
