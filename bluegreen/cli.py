"""Command-line interface for the blue/green control plane.

Entry point
-----------
``main()`` is registered as the ``bluegreen`` console script and is also run
by ``python -m bluegreen``.

Usage examples::

    bluegreen start
    bluegreen switch green
    bluegreen chaos
    bluegreen heal
    bluegreen drill
    bluegreen serve --port 8080

Every command except usage first checks that the environment file and the
compose file exist. Components raise ``BlueGreenError`` subclasses; only
``main`` turns them into an ERROR log line and a nonzero exit status.
"""

import argparse
import logging
import sys
from typing import Optional

from bluegreen.config import Settings, settings as default_settings
from bluegreen.controlplane import ControlPlane, build_control_plane, check_files
from bluegreen.errors import BlueGreenError
from bluegreen.log import SUCCESS, configure_logging

logger = logging.getLogger(__name__)

COMMANDS = ("start", "stop", "status", "switch", "reload", "chaos", "heal", "drill", "serve")

USAGE = """\
Usage: bluegreen <command>

Commands:
  start           Start the entire deployment (docker compose up -d)
  stop            Stop and remove the entire deployment (docker compose down)
  status          Display current container status and active pool routing
  switch <pool>   Switch the active pool ('blue' or 'green') and reload Nginx
  reload          Re-apply the persisted active pool to Nginx (after a failed switch)
  chaos           Induce failure (chaos) on the *currently active* pool
  heal [pool]     Stop chaos mode (default: the failing pool, or the legacy default)
  drill           Run the chaos -> failover -> recovery verification cycle
  serve           Serve these commands over HTTP
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bluegreen", usage=USAGE, add_help=False)
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("start")
    subparsers.add_parser("stop")
    subparsers.add_parser("status")
    subparsers.add_parser("reload")
    subparsers.add_parser("chaos")
    subparsers.add_parser("drill")

    switch_parser = subparsers.add_parser("switch")
    switch_parser.add_argument("pool", nargs="?")

    heal_parser = subparsers.add_parser("heal")
    heal_parser.add_argument("pool", nargs="?")

    serve_parser = subparsers.add_parser("serve")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8080)

    return parser


def _cmd_start(plane: ControlPlane, args: argparse.Namespace) -> int:
    logger.info("Starting Blue/Green deployment services...")
    plane.lifecycle.up()
    logger.log(SUCCESS, "Deployment services started. Check status with 'bluegreen status'.")
    return 0


def _cmd_stop(plane: ControlPlane, args: argparse.Namespace) -> int:
    logger.info("Stopping and cleaning up Blue/Green deployment services...")
    plane.lifecycle.down()
    logger.log(SUCCESS, "Deployment stopped and resources removed.")
    return 0


def _cmd_status(plane: ControlPlane, args: argparse.Namespace) -> int:
    view = plane.status.snapshot()
    plane.status.report(view, plane.store.name)
    return 0


def _cmd_switch(plane: ControlPlane, args: argparse.Namespace) -> int:
    if args.pool is None:
        logger.error("Switch command requires a target pool: 'blue' or 'green'.")
        return 1
    plane.switcher.switch_to(args.pool)
    return 0


def _cmd_reload(plane: ControlPlane, args: argparse.Namespace) -> int:
    plane.switcher.retry_reload()
    return 0


def _cmd_chaos(plane: ControlPlane, args: argparse.Namespace) -> int:
    plane.chaos.induce_chaos()
    return 0


def _cmd_heal(plane: ControlPlane, args: argparse.Namespace) -> int:
    # An unacknowledged heal has already been logged as a warning.
    plane.chaos.heal_chaos(args.pool)
    return 0


def _cmd_drill(plane: ControlPlane, args: argparse.Namespace) -> int:
    plane.drill.run()
    return 0


def _cmd_serve(plane: ControlPlane, args: argparse.Namespace) -> int:
    import uvicorn

    from bluegreen.api import create_app

    logger.info("Serving the control plane on http://%s:%s", args.host, args.port)
    uvicorn.run(create_app(plane), host=args.host, port=args.port, log_config=None)
    return 0


HANDLERS = {
    "start": _cmd_start,
    "stop": _cmd_stop,
    "status": _cmd_status,
    "switch": _cmd_switch,
    "reload": _cmd_reload,
    "chaos": _cmd_chaos,
    "heal": _cmd_heal,
    "drill": _cmd_drill,
    "serve": _cmd_serve,
}


def main(
    argv: Optional[list[str]] = None,
    settings: Settings = default_settings,
    plane: Optional[ControlPlane] = None,
) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS:
        print(USAGE)
        return 1

    args, extra = _build_parser().parse_known_args(argv)
    configure_logging(settings)
    if extra:
        logger.error("Unexpected arguments: %s", " ".join(extra))
        print(USAGE)
        return 1

    owned = None
    try:
        check_files(settings)
        if plane is None:
            plane = owned = build_control_plane(settings)
        return HANDLERS[args.command](plane, args)
    except BlueGreenError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    finally:
        if owned is not None:
            owned.close()


if __name__ == "__main__":
    sys.exit(main())
