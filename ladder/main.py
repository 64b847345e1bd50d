"""
Maintenance command line for the singles ladder.

    python -m ladder.main init-db
    python -m ladder.main show-ladder SEASON_ID
    python -m ladder.main repair-positions SEASON_ID [--admin-id ID]
    python -m ladder.main grant-admin USER_ID
"""

import argparse
import asyncio
import logging
import sys
import traceback

from ladder.config import Config
from ladder.database.database import Database
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.ladder_operations import LadderOperations
from ladder.utils.exceptions import LadderError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


async def show_ladder(db: Database, season_id: int) -> int:
    ladder = await LadderOperations(db).get_ladder(season_id)
    if not ladder:
        print(f"Season {season_id} has no players on the ladder")
        return 0
    for entry in ladder:
        print(f"{entry.position:>3}. {entry.user.name} (user {entry.user_id})")
    return 0


async def repair_positions(db: Database, season_id: int, admin_id: int) -> int:
    repaired = await LadderOperations(db).repair_stuck_positions(season_id, admin_id=admin_id)
    print(f"Repaired {repaired} ladder position(s) in season {season_id}")
    return 0


async def grant_admin(db: Database, user_id: int) -> int:
    admin = await AdminOperations(db).grant_admin(user_id)
    user = await db.get_user(admin.user_id)
    print(f"{user.name} (user {user.id}) is an admin")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Singles ladder maintenance')
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create database tables')

    show = commands.add_parser('show-ladder', help='Print the ladder for a season')
    show.add_argument('season_id', type=int)

    repair = commands.add_parser('repair-positions', help='Reassign positions stuck at the sentinel')
    repair.add_argument('season_id', type=int)
    repair.add_argument('--admin-id', type=int, default=Config.OWNER_USER_ID,
                        help='Acting admin (defaults to OWNER_USER_ID)')

    grant = commands.add_parser('grant-admin', help='Make a user an admin')
    grant.add_argument('user_id', type=int)

    return parser


async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    Config.validate()

    db = Database()
    await db.initialize()
    try:
        if args.command == 'show-ladder':
            return await show_ladder(db, args.season_id)
        if args.command == 'repair-positions':
            return await repair_positions(db, args.season_id, args.admin_id)
        if args.command == 'grant-admin':
            return await grant_admin(db, args.user_id)
        logger.info("Database tables are up to date")
        return 0
    except LadderError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        return 1
    finally:
        await db.close()


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
