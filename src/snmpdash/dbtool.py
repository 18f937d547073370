"""
snmpdash-dbtool - maintenance command line for the sample store.

Usage:
    snmpdash-dbtool [--addr URL] [--token TOKEN] [--debug] rename <from> <to>
    snmpdash-dbtool [--addr URL] [--token TOKEN] [--debug] merge <from> <to>
    snmpdash-dbtool [--addr URL] [--token TOKEN] [--debug] delete <name>
    snmpdash-dbtool [--addr URL] [--token TOKEN] [--debug] list
    snmpdash-dbtool --db PATH <command> ...
    snmpdash-dbtool decode <raw value>

Commands go to the running service at --addr (default $SERVER_ADDR or
http://localhost:8080). With --db they operate on a database file directly;
only do that while the service is stopped or idle.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence

from snmpdash.errors import ServiceError
from snmpdash.facade import (
    DEFAULT_SERVER_ADDR,
    LocalSourceAdmin,
    RemoteSourceAdmin,
    SourceAdmin,
)
from snmpdash.logging import setup_logging
from snmpdash.metrics.storage import SampleStore
from snmpdash.snmp.decode import decode_trap_value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snmpdash-dbtool",
        description="Rename, merge, delete and list sample sources",
    )
    parser.add_argument(
        "--addr",
        default=os.environ.get("SERVER_ADDR") or DEFAULT_SERVER_ADDR,
        help="Service address (default: $SERVER_ADDR or %(default)s)",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("SNMPDASH_TOKEN") or None,
        help="Bearer token for the service (default: $SNMPDASH_TOKEN)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Operate on this database file instead of the service",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    rename = sub.add_parser("rename", help="Rename a source")
    rename.add_argument("src", metavar="from")
    rename.add_argument("dst", metavar="to")

    merge = sub.add_parser("merge", help="Merge a source into another")
    merge.add_argument("src", metavar="from")
    merge.add_argument("dst", metavar="to")

    delete = sub.add_parser("delete", help="Delete a source and its samples")
    delete.add_argument("name")

    sub.add_parser("list", help="List sources")

    decode = sub.add_parser("decode", help="Decode a textual SNMP value")
    decode.add_argument("raw")

    return parser


def _open_admin(args: argparse.Namespace) -> SourceAdmin:
    if args.db:
        return LocalSourceAdmin(SampleStore.open(args.db))
    return RemoteSourceAdmin(args.addr, token=args.token)


def _run(admin: SourceAdmin, args: argparse.Namespace) -> None:
    if args.command == "rename":
        admin.rename(args.src, args.dst)
    elif args.command == "merge":
        admin.merge(args.src, args.dst)
    elif args.command == "delete":
        admin.delete(args.name)
    elif args.command == "list":
        for name in admin.list_sources():
            print(name)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run one dbtool command.

    Returns:
        0 on success, 1 if the command failed.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "decode":
        print(decode_trap_value(args.raw))
        return 0

    # Errors are reported on stderr below; log output only with --debug
    setup_logging(level="DEBUG" if args.debug else "CRITICAL", json_format=False)

    try:
        admin = _open_admin(args)
    except ServiceError as e:
        print(f"{args.command}: {e.message}", file=sys.stderr)
        return 1

    try:
        _run(admin, args)
    except ServiceError as e:
        print(f"{args.command}: {e.message}", file=sys.stderr)
        return 1
    finally:
        admin.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
