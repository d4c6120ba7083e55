"""
fchain command line driver.

Usage:
    fchain [options] FILTER [@N] FILTER ...
    fchain -list | -list-meta | -links
    fchain -info NAME|*|*:* ...

Exit codes: 0 success, 1 usage/configuration/chain error, 2 resources left
open at shutdown (with FCHAIN_LEAK_CHECK=1).
"""
from __future__ import annotations

import sys
from typing import Optional, Sequence

import structlog

from fchain.chain.builder import ChainBuilder
from fchain.cli.help import print_usage
from fchain.cli.options import parse_options, wants_help
from fchain.cli.tokens import positional
from fchain.config import ListMode, RunConfig, system_info
from fchain.engine.base import FilterSession
from fchain.engine.local import LocalSession
from fchain.errors import ChainError, EngineError, LogConfigError, NoFiltersError, UsageError
from fchain.logs.sink import LogSink
from fchain.registry.introspect import list_filters, print_filters_info
from fchain.session.keys import KeySource, NullKeySource, TerminalKeySource
from fchain.session.monitor import SessionMonitor

log = structlog.get_logger(__name__, tool="core")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_LEAK = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _create_session(cfg: RunConfig) -> FilterSession:
    return LocalSession.from_config(cfg)


def _key_source() -> KeySource:
    try:
        sys.stdin.fileno()
    except (AttributeError, OSError, ValueError):
        return NullKeySource()
    return TerminalKeySource()


# ---------------------------------------------------------------------------
# Run modes
# ---------------------------------------------------------------------------

def _introspect(session: FilterSession, cfg: RunConfig, argv: Sequence[str]) -> int:
    registry = session.registry()
    if cfg.print_info:
        print_filters_info(registry, positional(list(argv)))
    else:
        list_filters(registry, include_meta=cfg.list_mode is ListMode.META)
    return EXIT_OK


def _build_and_run(session: FilterSession, argv: Sequence[str]) -> int:
    builder = ChainBuilder(session)
    try:
        builder.build(argv)
    except NoFiltersError as exc:
        print_usage()
        return exc.exit_code
    except ChainError as exc:
        _print_err(str(exc))
        # Filters created before the failure still get one pass to shut down.
        session.run()
        return exc.exit_code

    _print_err("Running session, press 'q' to abort")
    with _key_source() as keys:
        session.post_user_task(SessionMonitor(keys), SessionMonitor.name)
        session.run()
    return EXIT_OK


def _run_chain(session: FilterSession, cfg: RunConfig, argv: Sequence[str]) -> int:
    try:
        code = _build_and_run(session, argv)
    except KeyboardInterrupt:
        log.warning("cli.interrupted")
        session.abort()
        return EXIT_ERROR
    if code != EXIT_OK:
        return code

    if cfg.dump_stats:
        session.print_stats()
    if cfg.dump_graph:
        session.print_connections()
    return EXIT_OK


def execute(cfg: RunConfig, argv: Sequence[str]) -> int:
    """Create the session, run the requested mode, tear the session down."""
    if cfg.dump_stats:
        mem_mb, cores = system_info()
        _print_err(f"System info: {mem_mb} MB RAM - {cores} cores")

    try:
        session = _create_session(cfg)
    except EngineError as exc:
        _print_err(f"Cannot create filter session: {exc}")
        return exc.exit_code

    try:
        if cfg.load_test_filters:
            session.register_test_filters()
        if cfg.list_mode is not ListMode.NONE or cfg.print_info:
            code = _introspect(session, cfg, argv)
        elif cfg.print_links:
            session.print_possible_connections()
            code = EXIT_OK
        else:
            code = _run_chain(session, cfg, argv)
    finally:
        session.close()

    if code == EXIT_OK and cfg.leak_check:
        leaked = session.open_resources()
        if leaked:
            _print_err(f"{leaked} resources still open at shutdown")
            return EXIT_LEAK
    return code


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    if wants_help(argv):
        print_usage()
        return EXIT_OK

    try:
        cfg = parse_options(argv)
    except LogConfigError as exc:
        _print_err(f"Bad log configuration: {exc}")
        return exc.exit_code
    except UsageError as exc:
        _print_err(f"Error: {exc}")
        print_usage()
        return exc.exit_code

    try:
        with LogSink(cfg.log):
            return execute(cfg, argv)
    except LogConfigError as exc:
        _print_err(f"Bad log configuration: {exc}")
        return exc.exit_code


def run_cli() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run_cli()
