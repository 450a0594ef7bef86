#!/usr/bin/env python3
"""
ContainerPulse command line

    containerpulse serve                 dashboard API + scheduled update loop
    containerpulse run-once              a single update cycle
    containerpulse deploy [--force]      redeploy the updater with rollback
    containerpulse rollback [TIMESTAMP]  restore a deployment backup
    containerpulse backup | list-backups | status | health
    containerpulse watchdog              keep the updater container alive
    containerpulse restart-worker ...    deferred self-update (run by the updater)
"""

import argparse
import asyncio
import json
import sys

from config.settings import AppConfig, setup_logging


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("main:app", host=args.host or AppConfig.HOST, port=args.port or AppConfig.PORT)
    return 0


async def _run_once(args) -> int:
    from services import build_updater

    services = await build_updater()
    results = await services.loop.run_cycle()
    _print_json({name: result.to_dict() for name, result in results.items()})
    return 0 if all(result.success for result in results.values()) else 1


async def _deploy(args) -> int:
    from services import build_release_controller

    result = await build_release_controller().deploy(force=args.force)
    _print_json(result.to_dict())
    return 0 if result.success else 1


async def _rollback(args) -> int:
    from services import build_release_controller

    result = await build_release_controller().rollback(args.timestamp)
    _print_json(result.to_dict())
    return 0 if result.success else 1


async def _backup(args) -> int:
    from services import build_release_controller

    timestamp = await build_release_controller().backup()
    print(f"Backup created: {timestamp}")
    return 0


async def _list_backups(args) -> int:
    from services import build_release_controller

    listing = build_release_controller().list_backups()
    if not listing['backups']:
        print("No backups found.")
        return 0
    print("Available backups:")
    for timestamp in listing['backups']:
        marker = " (latest)" if timestamp == listing['latest'] else ""
        print(f"  - {timestamp}{marker}")
    return 0


async def _status(args) -> int:
    from services import build_release_controller

    _print_json(await build_release_controller().status())
    return 0


async def _health(args) -> int:
    from services import build_release_controller

    healthy = await build_release_controller().check_health(args.attempts)
    print("ContainerPulse is healthy" if healthy else "ContainerPulse is not healthy")
    return 0 if healthy else 1


async def _watchdog(args) -> int:
    from services import build_watchdog

    watchdog = build_watchdog()
    if args.once:
        outcome = await watchdog.check_once()
        print(outcome.value)
        return 0 if outcome.value != 'failed' else 1
    await watchdog.run_forever()
    return 0


async def _restart_worker(args) -> int:
    from inventory.inspector import ContainerInspector
    from services import handoff_marker
    from updates.deferred_restart import run_restart_worker

    ok = await run_restart_worker(
        ContainerInspector(),
        handoff_marker(),
        generation=args.generation,
        old_container=args.old_container,
        service_name=args.service_name,
        compose_service=args.compose_service,
        image=args.image,
        compose_file=args.compose_file,
        delay=args.delay,
        port=AppConfig.PORT,
    )
    return 0 if ok else 1


def _async(handler):
    def run(args) -> int:
        return asyncio.run(handler(args))
    return run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="containerpulse", description="ContainerPulse container auto-updater")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", aliases=["run"], help="Run the API and the scheduled update loop")
    serve.add_argument("--host", help=f"Bind address (default {AppConfig.HOST})")
    serve.add_argument("--port", type=int, help=f"Port (default {AppConfig.PORT})")
    serve.set_defaults(func=cmd_serve)

    sub.add_parser("run-once", help="Run a single update cycle and exit").set_defaults(func=_async(_run_once))

    deploy = sub.add_parser("deploy", help="Redeploy the updater with automatic rollback")
    deploy.add_argument("--force", "-f", action="store_true", help="Redeploy even when already on the latest image")
    deploy.set_defaults(func=_async(_deploy))

    rollback = sub.add_parser("rollback", help="Roll back to a deployment backup")
    rollback.add_argument("timestamp", nargs="?", help="Backup timestamp (default: latest)")
    rollback.set_defaults(func=_async(_rollback))

    sub.add_parser("backup", help="Back up the current deployment").set_defaults(func=_async(_backup))
    sub.add_parser("list-backups", help="List deployment backups").set_defaults(func=_async(_list_backups))
    sub.add_parser("status", help="Show the updater's deployment status").set_defaults(func=_async(_status))

    health = sub.add_parser("health", help="Check the updater's liveness endpoint")
    health.add_argument("--attempts", type=int, help=f"Polls before giving up (default {AppConfig.HEALTH_CHECK_ATTEMPTS})")
    health.set_defaults(func=_async(_health))

    watchdog = sub.add_parser("watchdog", help="Keep the updater container running")
    watchdog.add_argument("--once", action="store_true", help="Check once and exit")
    watchdog.set_defaults(func=_async(_watchdog))

    worker = sub.add_parser("restart-worker", help="Deferred self-update restart (internal)")
    worker.add_argument("--old-container", required=True)
    worker.add_argument("--service-name", required=True)
    worker.add_argument("--compose-service")
    worker.add_argument("--image", required=True)
    worker.add_argument("--generation", type=int, required=True)
    worker.add_argument("--delay", type=int, default=AppConfig.SELF_UPDATE_DELAY)
    worker.add_argument("--compose-file")
    worker.set_defaults(func=_async(_restart_worker))

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command not in ("serve", "run"):
        # uvicorn imports main, which configures logging itself
        setup_logging()
    return args.func(args)


def run():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nOperation cancelled.")
        sys.exit(1)


if __name__ == "__main__":
    run()
