"""Operator commands.

    python -m app.cli adduser alice@example.com s3cret
    python -m app.cli ingest
    python -m app.cli notify
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .db import create_all, session_factory
from .errors import PricewatchError
from .users import create_user

logger = logging.getLogger(__name__)


def _adduser(args: argparse.Namespace) -> int:
    db = session_factory()()
    try:
        user = create_user(db, args.username, args.password)
    finally:
        db.close()
    print(f"created user {user.username} (id={user.id})")
    return 0


def _ingest(args: argparse.Namespace) -> int:
    from worker.tasks.prices import ingest

    db = session_factory()()
    try:
        written = ingest(db)
    finally:
        db.close()
    print(f"stored {written} prices")
    return 0


def _notify(args: argparse.Namespace) -> int:
    from app.notify import send_email
    from worker.tasks.alerts import notify

    db = session_factory()()
    try:
        marked = notify(db, send=send_email)
    finally:
        db.close()
    print(f"marked {marked} alerts sent")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m app.cli")
    sub = parser.add_subparsers(dest="command", required=True)

    adduser = sub.add_parser("adduser", help="create a login")
    adduser.add_argument("username", help="email address, also used for alert emails")
    adduser.add_argument("password")
    adduser.set_defaults(func=_adduser)

    ingest = sub.add_parser("ingest", help="fetch and store one price snapshot")
    ingest.set_defaults(func=_ingest)

    notify = sub.add_parser("notify", help="email triggered alerts once")
    notify.set_defaults(func=_notify)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    create_all()
    try:
        return args.func(args)
    except PricewatchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
