"""Upsert users into the gate pass data file.

    python seed.py --id S1 --name Alice --password pass123 --role Student
    python seed.py --demo
"""
import argparse
import logging
import sys
from typing import Iterable

from config import settings
from database import get_store
from logging_config import setup_logging
from schemas import User

logger = logging.getLogger("seed")

DEMO_USERS = [
    User(id="S1", name="Alice", password="student123", role="Student"),
    User(id="M1", name="Mod1", password="moderator123", role="Moderator"),
    User(id="G1", name="Gate1", password="gate123", role="Gatekeeper"),
]


def upsert_users(store, users: Iterable[User]) -> bool:
    """Replace users with matching ids, append the rest, then save."""
    dataset = store.load()
    by_id = {u.id: i for i, u in enumerate(dataset.users)}
    for user in users:
        if user.id in by_id:
            dataset.users[by_id[user.id]] = user
        else:
            by_id[user.id] = len(dataset.users)
            dataset.users.append(user)
    return store.save(dataset)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Add or update gate pass users")
    parser.add_argument("--demo", action="store_true", help="insert one demo user per role")
    parser.add_argument("--id", dest="user_id")
    parser.add_argument("--name")
    parser.add_argument("--password")
    parser.add_argument("--role", choices=["Student", "Moderator", "Gatekeeper"])
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)

    users = list(DEMO_USERS) if args.demo else []
    if args.user_id:
        if not (args.name and args.password and args.role):
            parser.error("--id requires --name, --password and --role")
        users.append(User(id=args.user_id, name=args.name, password=args.password, role=args.role))
    if not users:
        parser.error("nothing to do: pass --demo or --id")

    store = get_store(settings)
    if not upsert_users(store, users):
        logger.error("Could not save users to %s", store.describe()["location"])
        return 1
    for user in users:
        logger.info("Upserted %s (%s)", user.id, user.role)
    return 0


if __name__ == "__main__":
    sys.exit(main())
