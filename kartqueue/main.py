"""Command line entry point for the kart dispatch platform."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

import structlog

from kartqueue.enterprise.config.settings import DEFAULT_CONFIG_DIR, AppSettings, get_settings
from kartqueue.observability import configure_logging, configure_tracer
from kartqueue.persistence import InMemoryDocumentStore, create_schema, dispose_engine
from kartqueue.server.dependencies import get_message_bus, get_platform, get_store
from kartqueue.server.grpc import start_grpc_server
from kartqueue.services import DispatchPlatform, load_fixtures

logger = structlog.get_logger(__name__)

DEFAULT_FIXTURES = DEFAULT_CONFIG_DIR / "fixtures.yaml"


async def _seed(fixtures: Path) -> None:
    await create_schema()
    platform = get_platform()
    try:
        counts = await platform.catalog.seed(load_fixtures(fixtures), users=platform.users)
    finally:
        await dispose_engine()
    print(f"Seeded {counts['cases']} cases, {counts['karts']} karts and {counts['users']} users into {type(get_store()).__name__}")


async def _serve_grpc(settings: AppSettings, port: int) -> None:
    if settings.database.enabled:
        await create_schema()
    platform = get_platform()
    bus = get_message_bus()
    await bus.connect()
    await platform.triggers.bind(bus, settings.messaging.topic_triggers)
    server = await start_grpc_server(platform, port)
    logger.info("grpc_started", port=port, bus=settings.messaging.backend)
    try:
        await server.wait_for_termination()
    finally:
        await bus.close()


async def _demo(settings: AppSettings, fixtures: Path) -> None:
    """Two users race for one case on a throwaway in-memory store."""

    platform = DispatchPlatform(InMemoryDocumentStore(), settings=settings)
    data = load_fixtures(fixtures)
    await platform.catalog.seed(data, users=platform.users)

    case = (await platform.catalog.cases())[0]
    users = [raw["user_id"] for raw in data.get("users") or []][:2]
    for user_id in users:
        await platform.users.add_to_cart(user_id, case.id)
        result = await platform.place_order(user_id)
        for admission in result.admissions:
            print(f"{user_id}: queued for {case.name} at position {admission.position}")
        for fulfillment in result.fulfillments:
            print(f"{fulfillment.order.user_id}: fulfilled, kart={fulfillment.kart_id}")

    _, released = await platform.release_case(case.id)
    if released is not None:
        print(f"{released.order.user_id}: fulfilled after release, kart={released.kart_id}")

    for user_id in users:
        for entry in await platform.users.history(user_id):
            print(f"  [{user_id}] {entry.timestamp:%H:%M:%S} {entry.info}")


def _serve_api(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("kartqueue.server.app:app", host=host, port=port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Case reservation queues and kart dispatch")
    commands = parser.add_subparsers(dest="command", required=True)

    seed = commands.add_parser(
        "seed",
        help="Register cases, karts and users from a fixtures file into the SQL store (needs database.enabled)",
    )
    seed.add_argument("--fixtures", type=Path, default=DEFAULT_FIXTURES)

    grpc_cmd = commands.add_parser("grpc", help="Run the gRPC server and consume trigger events")
    grpc_cmd.add_argument("--port", type=int, default=50051)

    api = commands.add_parser("api", help="Run the HTTP API")
    api.add_argument("--host", default="127.0.0.1")
    api.add_argument("--port", type=int, default=8000)

    demo = commands.add_parser("demo", help="Walk two users through a reservation in memory")
    demo.add_argument("--fixtures", type=Path, default=DEFAULT_FIXTURES)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    if args.command == "seed" and not settings.database.enabled:
        parser.error("seed writes to the SQL store; set database.enabled (KQ_DATABASE__ENABLED=true)")
    configure_logging(settings.logging, settings.environment)
    configure_tracer("kartqueue", settings.telemetry.otlp_endpoint, settings.environment)

    if args.command == "seed":
        asyncio.run(_seed(args.fixtures))
    elif args.command == "grpc":
        asyncio.run(_serve_grpc(settings, args.port))
    elif args.command == "api":
        _serve_api(args.host, args.port)
    elif args.command == "demo":
        asyncio.run(_demo(settings, args.fixtures))


if __name__ == "__main__":
    main()
