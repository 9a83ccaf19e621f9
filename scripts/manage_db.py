"""
Database maintenance for the panel.

    python scripts/manage_db.py create          # create every table
    python scripts/manage_db.py purge [SECONDS] # drop abandoned staged tracks
"""
import argparse
import asyncio
import datetime
import os
import sys
from dotenv import load_dotenv

# The 'distro' package lives in Backend/, the .env one level above it
backend_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'Backend'))
sys.path.append(backend_dir)
load_dotenv(os.path.join(os.path.dirname(backend_dir), ".env"))

from distro.core.config import settings
from distro.services.database import Base, SessionLocal, engine
from distro.services.staging_store import StagingStore

# Imported for their side effect of registering tables on Base.metadata
from distro.models import audit_log, release, staged_track, track  # noqa: F401


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


async def purge_staging(ttl_seconds: int):
    async with SessionLocal() as session:
        purged = await StagingStore(session).purge_expired(datetime.timedelta(seconds=ttl_seconds))
        await session.commit()
    print(f"Purged {purged} staged tracks older than {ttl_seconds}s")


async def main(args):
    try:
        if args.command == "create":
            await create_tables()
        else:
            await purge_staging(args.ttl)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("create", help="create all tables")
    purge = commands.add_parser("purge", help="delete staged tracks abandoned for longer than SECONDS")
    purge.add_argument("ttl", nargs="?", type=int, default=settings.STAGING_TTL_SECONDS, metavar="SECONDS")
    asyncio.run(main(parser.parse_args()))
