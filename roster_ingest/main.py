"""
Roster Seeding CLI.

Usage:
    python -m roster_ingest.main --file data/roster.json
    python -m roster_ingest.main --file data/roster.csv --backend database
    python -m roster_ingest.main --file data/roster.json --dry-run
"""

import argparse
import asyncio
import logging
import sys
from typing import List

from config.settings import get_settings
from lead_scoring.models import TeamMember
from lead_scoring.roster_store import InMemoryRosterStore, RosterStore

from .roster_loader import RosterLoader

logger = logging.getLogger(__name__)


class RosterSeeder:
    """Loads a roster file and writes every member into a roster store."""

    def __init__(self, store: RosterStore):
        self.store = store
        self.loader = RosterLoader()

    async def seed_file(self, file_path: str) -> List[TeamMember]:
        members = self.loader.load(file_path)
        return await self.seed(members)

    async def seed(self, members: List[TeamMember]) -> List[TeamMember]:
        saved = []
        for member in members:
            saved.append(await self.store.upsert_member(member))
        logger.info(f"Seeded {len(saved)} members")
        return saved


async def _run(args) -> int:
    settings = get_settings()
    backend = args.backend or settings.roster_backend

    if args.dry_run:
        members = RosterLoader().load(args.file)
        for member in members:
            logger.info(
                f"  {member.id} team={member.team} load={member.current_load}/{member.max_load} "
                f"specialties={sorted(member.specialties)} languages={sorted(member.languages)}"
            )
        logger.info(f"Dry run: {len(members)} valid members in {args.file}")
        return 0

    if backend == "database":
        database_url = args.database_url or settings.database_url
        if not database_url:
            logger.error("DATABASE_URL not set")
            return 1

        from database.repositories import SqlRosterStore
        from database.session import init_db, close_db

        session_factory = await init_db(database_url)
        try:
            await RosterSeeder(SqlRosterStore(session_factory)).seed_file(args.file)
        finally:
            await close_db()
    else:
        store = InMemoryRosterStore()
        await RosterSeeder(store).seed_file(args.file)
        teams = await store.list_teams()
        for team, members in teams.items():
            logger.info(f"  {team}: {len(members)} members")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Roster Seeding CLI")
    parser.add_argument("--file", required=True, help="Roster file (.csv or .json)")
    parser.add_argument("--backend", choices=["memory", "database"], help="Roster backend (default from settings)")
    parser.add_argument("--database-url", help="Database URL (default from settings)")
    parser.add_argument("--dry-run", action="store_true", help="Validate the file without writing")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        sys.exit(asyncio.run(_run(args)))
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
