import argparse
import asyncio
import sys
from typing import Optional, Sequence

from .config import settings
from .daemon import get_daemon_client
from .db.crud.user import create_user, get_user_by_username
from .db.database import get_async_session, init_db
from .errors import NotFound
from .logger import logger
from .nodes import get_configuration, get_node, to_json, to_yaml
from .security import get_token_codec
from .servers import (
    RebuildOutcome,
    RebuildState,
    get_servers_for_rebuild,
    rebuild_servers,
)


def _print_progress(outcome: RebuildOutcome, done: int, total: int) -> None:
    print(f"[{done}/{total}] {outcome.server_name} {outcome.state.value}")
    if outcome.state == RebuildState.FAILED:
        print(outcome.failure_message, file=sys.stderr)


async def rebuild(server_id: Optional[int], node_id: Optional[int]) -> int:
    """Rebuild the selected servers; failed targets are reported, not fatal."""
    async with get_async_session() as session:
        servers = await get_servers_for_rebuild(session, server_id, node_id)

    if not servers:
        print("No servers matched.")
        return 0

    print(f"Rebuilding {len(servers)} servers...")
    report = await rebuild_servers(
        servers, get_daemon_client(), on_progress=_print_progress
    )
    print(f"{len(report.succeeded)} succeeded, {len(report.failed)} failed.")
    return 0


async def node_config(node_id: int, output_format: str) -> int:
    async with get_async_session() as session:
        try:
            node = await get_node(session, node_id)
        except NotFound as e:
            logger.error(str(e))
            return 1

    configuration = get_configuration(node, get_token_codec(), settings.app_url)
    if output_format == "json":
        print(to_json(configuration, pretty=True))
    else:
        print(to_yaml(configuration), end="")
    return 0


async def register(username: str) -> int:
    async with get_async_session() as session:
        if await get_user_by_username(session, username) is not None:
            logger.error(f"Username {username} already registered")
            return 1
        user = await create_user(session, username)

    logger.info(f"User {user.username} created with id {user.id}")
    return 0


async def run(args: argparse.Namespace) -> int:
    await init_db()
    if args.command == "rebuild":
        return await rebuild(args.server, args.node)
    if args.command == "create-user":
        return await register(args.username)
    return await node_config(args.node_id, args.format)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="panel")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rebuild_parser = subparsers.add_parser(
        "rebuild", help="Push current build settings to the daemons"
    )
    rebuild_parser.add_argument("server", type=int, nargs="?", default=None)
    rebuild_parser.add_argument("--node", type=int, default=None)

    config_parser = subparsers.add_parser(
        "node-config", help="Print a node's daemon configuration"
    )
    config_parser.add_argument("node_id", type=int)
    config_parser.add_argument("--format", choices=["yaml", "json"], default="yaml")

    user_parser = subparsers.add_parser("create-user", help="Register a server owner")
    user_parser.add_argument("username", type=str)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
