#!/usr/bin/env python3
"""
pipeskim command line.

    instances | pipeskim skim               # -> "i-1 i-2 i-3"
    stacks | pipeskim run -j 4 --output-dir out -- aws cloudformation describe-stacks --stack-name {}
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import IO, List, Optional, Sequence, Union

from .config import Settings, load_batch_config
from .errors import ConfigError, PipeskimError, RunnerStartError
from .parallel import BoundedRunner, output_path_for, render_command
from .parallel.command import PLACEHOLDER
from .skim import extract
from .types import WorkItem
from .utils import setup_logging

logger = logging.getLogger(__name__)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipeskim",
        description="Skim resource ids from piped listings and fan commands out over them.",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level name")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    skim = subparsers.add_parser("skim", help="Print explicit args plus first tokens of stdin lines")
    skim.add_argument("args", nargs="*", help="Explicit arguments, placed first")

    run = subparsers.add_parser("run", help="Run a command once per skimmed token")
    run.add_argument(
        "-j",
        "--max-concurrent",
        type=int,
        default=None,
        help=f"Concurrency budget (default {settings.max_concurrent})",
    )
    run.add_argument("--timeout", type=float, default=None, help="Per-item timeout in seconds")
    run.add_argument("--output-dir", default=None, help="Write each item's stdout to DIR/<token>.out")
    run.add_argument("--config", default=None, help="YAML batch config")
    run.add_argument(
        "--arg",
        dest="explicit",
        action="append",
        default=[],
        help="Explicit token, processed before stdin tokens. Can be repeated.",
    )
    run.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit with status 1 when any item failed",
    )
    run.add_argument("command", nargs=argparse.REMAINDER, help="Command template; {} is replaced by the token")
    return parser


def cmd_skim(args: argparse.Namespace, stdin: IO[str], stdout: IO[str]) -> int:
    line = extract(*args.args, stream=stdin)
    if line:
        stdout.write(line + "\n")
    return 0


def cmd_run(args: argparse.Namespace, settings: Settings, stdin: IO[str]) -> int:
    command: Sequence[str] = args.command
    if command and command[0] == "--":
        command = command[1:]

    batch = load_batch_config(args.config) if args.config else None
    explicit: List[str] = list(args.explicit)
    from_config = False
    if batch is not None:
        if not command:
            command = [batch.command] if isinstance(batch.command, str) else batch.command
            from_config = True
        explicit = batch.items + explicit

    if not command:
        raise ConfigError("No command given")
    template = _template(command, from_config)
    try:
        render_command(template, "")
    except ValueError as e:
        raise ConfigError(str(e)) from e

    max_concurrent = _first_set(
        args.max_concurrent,
        batch.max_concurrent if batch else None,
        settings.max_concurrent,
    )
    timeout = _first_set(args.timeout, batch.timeout if batch else None, settings.timeout)
    output_dir = _first_set(args.output_dir, batch.output_dir if batch else None)

    tokens = extract(*explicit, stream=stdin).split()
    if not tokens:
        logger.info("No tokens to process")
        return 0

    try:
        runner = BoundedRunner(max_concurrent=max_concurrent, timeout_per_item=timeout)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    with runner:
        for token in tokens:
            runner.submit(
                WorkItem(
                    command=render_command(template, token),
                    label=token,
                    stdout_path=output_path_for(output_dir, token) if output_dir else None,
                )
            )
    result = runner.drain()

    for outcome in result.failed:
        logger.error("%s: %s", outcome.label, outcome.error)
    if args.fail_on_error and result.failure_count:
        return 1
    return 0


def _template(command: Sequence[str], from_config: bool) -> Union[str, List[str]]:
    """
    A lone word is shell-split only when it holds a whole command line: a
    config string, or a quoted template like "aws s3 ls {}". Otherwise it is
    an executable path and may contain spaces.
    """
    if len(command) == 1:
        word = command[0]
        if from_config or PLACEHOLDER in word or not word.strip():
            return word
    return list(command)


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"pipeskim: {e}", file=sys.stderr)
        return 2

    args = build_parser(settings).parse_args(argv)
    setup_logging(args.log_level, settings.log_file)

    try:
        if args.subcommand == "skim":
            return cmd_skim(args, sys.stdin, sys.stdout)
        return cmd_run(args, settings, sys.stdin)
    except (ConfigError, RunnerStartError) as e:
        print(f"pipeskim: {e}", file=sys.stderr)
        return 2
    except PipeskimError as e:
        print(f"pipeskim: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
