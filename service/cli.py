# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
run [--kwargs k=v ...]
    - Executes one volunteer_watch pipeline pass
    - Prints a one-line summary; exit 0 on success, 1 on failure

serve [--cron EXPR] [--tz NAME] [--run-now] [--kwargs k=v ...]
    - Starts the APScheduler loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

show-config [--kwargs k=v ...]
    - Resolves Settings from env + kwargs and prints the params echo
      (credential omitted); nonzero on configuration error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from modules.volunteer_watch import run as _run_pipeline
from modules.volunteer_watch.lib.config import ConfigError, Settings
from modules.volunteer_watch.lib.utils import today_ymd
from service import logging_utils as L
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except ValueError:
            out[k] = v
    return out


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _kwargs_or_exit(args: argparse.Namespace) -> dict[str, Any] | None:
    try:
        return _parse_kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return None


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    run_id = uuid.uuid4().hex
    start_time = time.monotonic()

    kwargs = _kwargs_or_exit(args)
    if kwargs is None:
        return 1
    LOG.debug("Run volunteer_watch with kwargs=%s", sorted(kwargs))

    try:
        snapshot = _run_pipeline(**kwargs)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "run_id": run_id,
            "trigger_type": "adhoc",
            "kwargs": kwargs,
            "count": snapshot.get("count"),
            "duration_ms": duration_ms,
        })
        print(f"DONE: {snapshot.get('count', 0)} items -> {snapshot.get('params', {}).get('OUTPUT_PATH', '')}")
        return 0

    except KeyboardInterrupt:
        return 130
    except ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        duration_s = time.monotonic() - start_time
        LOG.exception("Pipeline run failed")
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "run_id": run_id,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1


def cmd_show_config(args: argparse.Namespace) -> int:
    kwargs = _kwargs_or_exit(args)
    if kwargs is None:
        return 1
    try:
        settings = Settings.from_env_and_kwargs(kwargs)
    except ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print(json.dumps(settings.echo_params(today_ymd()), ensure_ascii=False, indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler loop until a termination signal is received.
    Configuration is validated once up front so a bad setup fails fast.
    """
    kwargs = _kwargs_or_exit(args)
    if kwargs is None:
        return 1
    try:
        Settings.from_env_and_kwargs(kwargs)
    except ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(
            _run_pipeline,
            kwargs=kwargs,
            cron=args.cron,
            tz_name=args.tz,
            run_now=args.run_now,
        )
        LOG.info("Scheduler started: %r", running.sched)

        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler-like object."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------- Argparse ------------------------------------
def _add_kwargs_arg(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Settings overrides by field name, e.g. sido_code=6110000 max_detail=50 (JSON values supported).",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="volunteer-watch",
        description="Collect 1365 volunteer listings into a JSON snapshot.",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # run
    sp = sub.add_parser("run", help="Run one collection pass and write the snapshot.")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_run)

    # serve
    sp = sub.add_parser("serve", help="Run collection passes on a cron schedule.")
    sp.add_argument("--cron", help="Crontab expression (default: VOLUNTEER_WATCH_CRON or '0 */6 * * *').")
    sp.add_argument("--tz", help="Scheduler timezone (default: TZ or Asia/Seoul).")
    sp.add_argument("--run-now", action="store_true", help="Also run once immediately on start.")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_serve)

    # show-config
    sp = sub.add_parser("show-config", help="Print the resolved configuration (credential omitted).")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_show_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
