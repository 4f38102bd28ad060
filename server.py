#!/usr/bin/env python3
"""Win-Back Automation — API server and scheduler.

Launch: python3 server.py
Serves at http://0.0.0.0:8000 (or PORT env var)
"""

import logging
import os

import uvicorn

from winback.config import HOST, PORT


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("  Win-Back Automation")
    print("=" * 60)

    if not os.environ.get("SUPABASE_URL", ""):
        print("\n  WARNING: SUPABASE_URL not set. Set environment variables:")
        print("    SUPABASE_URL, SUPABASE_SERVICE_KEY")
        print("  Continuing anyway for local development...\n")
    if not os.environ.get("CRON_SECRET", ""):
        print("  WARNING: CRON_SECRET not set — trigger and config endpoints are unauthenticated.\n")

    print(f"Starting server on {HOST}:{PORT}")
    print("  Press Ctrl+C to stop\n")

    from winback.app import create_app
    app = create_app()
    uvicorn.run(app, host=HOST, port=PORT, log_level="info")


if __name__ == "__main__":
    main()
