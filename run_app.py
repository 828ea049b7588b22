#!/usr/bin/env python3
"""
Snowstorm Backend Runner
========================

Run the API and perform one-off maintenance tasks.

Usage:
    python run_app.py                          # Development server with auto-reload
    python run_app.py --mode prod              # Production mode
    python run_app.py --port 8001              # Custom port
    python run_app.py --init-db                # Create tables and exit
    python run_app.py --create-admin EMAIL     # Create an admin account and exit
"""

import argparse
import asyncio
import getpass
import sys

def run_server(host: str, port: int, reload: bool, workers: int):
    """Run the FastAPI application"""
    import uvicorn

    print(f"Starting Snowstorm API on {host}:{port}")
    print(f"API Docs: http://{host}:{port}/api/docs")
    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else workers,
        log_level="info"
    )

async def init_database():
    from app.core.database import init_db, close_db

    await init_db()
    await close_db()
    print("Database tables created")

async def create_admin(email: str, password: str, name: str):
    from app.api.v1.auth.services import AuthService
    from app.core.database import get_db_context, init_db, close_db
    from app.models import UserRole

    await init_db()
    async with get_db_context() as db:
        user = await AuthService(db).create_user(email, password, name, role=UserRole.ADMIN)
    await close_db()
    print(f"Admin {user.email} created with id {user.id}")

def main():
    parser = argparse.ArgumentParser(
        description="Snowstorm Backend Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="Server mode (default: dev)"
    )
    parser.add_argument("--host", default=None, help="Host to bind to (default: HOST setting)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: PORT setting)")
    parser.add_argument("--init-db", action="store_true", help="Create database tables and exit")
    parser.add_argument("--create-admin", metavar="EMAIL", help="Create an admin account and exit")
    parser.add_argument("--name", default="Administrator", help="Display name for --create-admin")

    args = parser.parse_args()

    from app.core.config import settings
    from app.core.logging import setup_logging

    setup_logging()

    if args.init_db:
        asyncio.run(init_database())
        return 0

    if args.create_admin:
        password = getpass.getpass("Password: ")
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            print(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
            return 1
        asyncio.run(create_admin(args.create_admin, password, args.name))
        return 0

    run_server(
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        reload=args.mode == "dev",
        workers=settings.WORKERS
    )
    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
