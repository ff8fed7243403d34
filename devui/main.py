"""Command-line entry point for devui."""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from devui.config.options import load_options
from devui.config.settings import load_settings
from devui.errors import DevUIError
from devui.graph.project_graph import generate_project_graph, load_project_graph
from devui.orchestrate import Orchestrator
from devui.supervisor.launcher import NxCommandBuilder
from devui.utils.logger import ExtraAdapter, get_logger, log_error, setup_logging

logger = ExtraAdapter(get_logger(__name__), {"module": "MAIN"})


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devui",
        description="Run workspace watch tasks side by side in a live terminal dashboard.",
    )
    parser.add_argument("-c", "--options", help="JSON options file with a 'targets' mapping.")
    parser.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Task name or project:task to run (repeatable).",
    )
    parser.add_argument("--graph", help="Project graph JSON from 'nx graph --file'. Generated when omitted.")
    parser.add_argument("--cwd", help="Workspace root. Defaults to the current directory.")
    parser.add_argument(
        "--exclude-project",
        dest="exclude_projects",
        action="append",
        default=[],
        metavar="PROJECT",
        help="Project whose tasks are never selected (repeatable).",
    )
    parser.add_argument("--nx", dest="nx_bin", help="Nx executable. Overrides DEVUI_NX_BIN.")
    parser.add_argument("--log-file", help="JSON-lines log file. Overrides DEVUI_LOG_FILE.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings(Path(args.cwd) if args.cwd else None)
    except ValueError as e:
        print(f"devui: {e}", file=sys.stderr)
        return 1

    overrides = {}
    if args.nx_bin:
        overrides["nx_bin"] = args.nx_bin
    if args.log_file:
        overrides["log_file"] = Path(args.log_file).expanduser()
    if args.verbose:
        overrides["log_level"] = logging.DEBUG
    settings = replace(settings, **overrides)

    try:
        log_path = setup_logging(settings.log_file, level=settings.log_level)
    except OSError as e:
        print(f"devui: cannot open log file {settings.log_file}: {e}", file=sys.stderr)
        return 1
    logger.info("Starting devui", cwd=str(settings.cwd), log_file=str(log_path))

    try:
        options = load_options(args.options, extra_targets=args.targets)
        builder = NxCommandBuilder(settings.nx_bin)
        if args.graph:
            graph = load_project_graph(args.graph)
        else:
            graph = generate_project_graph(builder, settings.cwd)

        orchestrator = Orchestrator(
            graph,
            options,
            settings=settings,
            command_builder=builder,
            exclude_projects=args.exclude_projects,
        )
        code = orchestrator.run()
    except DevUIError as e:
        log_error(logger, e)
        print(f"devui: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        print("devui: interrupted", file=sys.stderr)
        return 1

    logger.info("devui finished", exit_code=code)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
