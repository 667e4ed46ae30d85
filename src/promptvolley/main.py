"""
main.py — promptvolley Entry Point

Usage:
    promptvolley                              # REPL as user "cli_user"
    promptvolley "a lighthouse at dusk"       # single turn
    promptvolley --user-id alice --log-level DEBUG
    promptvolley --config path/to/config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import NoReturn, Optional

from dotenv import load_dotenv


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="promptvolley",
        description="Refine image generation requests turn by turn.",
    )
    parser.add_argument(
        "text",
        nargs="?",
        default=None,
        help="Run a single turn with this input. Omit to start the REPL.",
    )
    parser.add_argument(
        "--user-id",
        default="cli_user",
        help="Session owner; history is kept per user id (default: cli_user)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $PROMPTVOLLEY_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def _die(message: str) -> NoReturn:
    print(message, file=sys.stderr)
    sys.exit(1)


def bootstrap(args: argparse.Namespace):
    """
    Load and fully validate the config, then start logging.

    Any config problem prints a readable report and exits with status 1
    before a single log line is written.
    """
    from pydantic import ValidationError

    from promptvolley.config.settings import ConfigError, load_settings
    from promptvolley.observability.logger import get_logger, setup_logging

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        report = "\n".join(
            f"  - {'.'.join(str(part) for part in err['loc']) or '?'}: {err['msg']}"
            for err in exc.errors()
        )
        _die(f"\nInvalid configuration:\n\n{report}\n")
    except (OSError, ValueError) as exc:
        _die(f"\nCould not read configuration: {type(exc).__name__}: {exc}\n")

    try:
        settings.validate_all()
    except ConfigError as exc:
        _die(str(exc))

    cfg = settings.logging
    setup_logging(
        level=args.log_level or cfg.level,
        log_dir=cfg.log_dir,
        json_format=cfg.json_format,
        console_output=cfg.console_output,
        max_bytes=cfg.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.backup_count,
    )
    return settings, get_logger("promptvolley.main")


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings, log = bootstrap(args)

    log.info(
        "promptvolley.starting",
        llm_model=settings.llm.model,
        generation_url=settings.generation.url,
        history_backend=settings.history.backend,
        single_turn=args.text is not None,
    )

    from promptvolley.cli import run_cli
    from promptvolley.exceptions import PersistenceError

    try:
        return await run_cli(settings, user_id=args.user_id, text=args.text)
    except PersistenceError as e:
        log.error("promptvolley.history_unavailable", error=str(e))
        print(f"\nSession history unavailable: {e}\n", file=sys.stderr)
        return 1


def run() -> None:
    load_dotenv()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
