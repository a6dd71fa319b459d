#!/usr/bin/env python3
"""
NotifyQ Runner
==============

Starts the pieces of the notification pipeline.

Usage:
    python run_app.py                    # Internal API (default)
    python run_app.py --mode api         # Internal API
    python run_app.py --mode worker      # Celery worker for dispatch, delivery and cleanup queues
    python run_app.py --mode beat        # Celery beat (dispatch, reclaim and cleanup schedule)
    python run_app.py --mode dispatch    # One dispatch pass in this process, then exit
    python run_app.py --mode reclaim     # One reclaim sweep in this process, then exit
    python run_app.py --port 8001        # Custom port
"""

import argparse
import asyncio
import os
import subprocess
import sys

def check_environment():
    """Report which configuration source is in use"""
    if os.path.exists(".env"):
        print("✅ .env file found")
    else:
        print("⚠️  .env file not found, using defaults")

def run_api(host="0.0.0.0", port=8000, reload=True):
    """Run the internal FastAPI application"""
    print(f"\n🚀 Starting NotifyQ API on {host}:{port}")
    print(f"📖 API Docs: http://localhost:{port}/api/docs")
    print("\n" + "=" * 50)

    import uvicorn
    uvicorn.run(
        "notifyq.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )

def run_celery(*args):
    """Run a Celery worker or beat process"""
    command = [sys.executable, "-m", "celery", "-A", "notifyq.core.celery_app", *args]
    print(f"\n🚀 {' '.join(command[2:])}")
    return subprocess.call(command)

async def run_dispatch_pass(batch_size):
    from notifyq.core.database import init_db, close_db, get_session_factory
    from notifyq.services.notification_dispatcher import NotificationDispatcher

    await init_db()
    try:
        report = await NotificationDispatcher(get_session_factory()).run_once(batch_size)
        print(
            f"Claimed {report.claimed}: {report.completed} completed, {report.deferred} deferred, "
            f"{report.failed} failed, {report.stuck} stuck"
        )
    finally:
        await close_db()

async def run_reclaim_sweep():
    from notifyq.core.database import init_db, close_db, get_session_factory
    from notifyq.services.notification_dispatcher import NotificationDispatcher

    await init_db()
    try:
        reclaimed = await NotificationDispatcher(get_session_factory()).reclaim()
        print(f"Reclaimed {reclaimed} stuck queue items")
    finally:
        await close_db()

def main():
    parser = argparse.ArgumentParser(
        description="NotifyQ Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--mode",
        choices=["api", "worker", "beat", "dispatch", "reclaim"],
        default="api",
        help="What to run (default: api)"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Items per dispatch pass (default: DISPATCH_BATCH_SIZE)"
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable auto-reload"
    )

    args = parser.parse_args()
    check_environment()

    if args.mode == "api":
        run_api(args.host, args.port, reload=not args.no_reload)
    elif args.mode == "worker":
        from notifyq.core.celery_app import QUEUE_NAMES
        return run_celery("worker", "-Q", ",".join(QUEUE_NAMES), "--loglevel=info")
    elif args.mode == "beat":
        return run_celery("beat", "--loglevel=info")
    elif args.mode == "dispatch":
        asyncio.run(run_dispatch_pass(args.batch_size))
    elif args.mode == "reclaim":
        asyncio.run(run_reclaim_sweep())

    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        sys.exit(0)
