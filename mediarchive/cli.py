"""Command line entry point for mediarchive."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Sequence

from .auth import authorize_pin
from .config import default_config_path, load_config
from .core import (
    PROGRESS_LOGGER_NAME,
    ArchiveError,
    ArchiveOptions,
    ChannelLog,
    archive_media,
)
from .twitter import DEFAULT_USER_AGENT, TimelineMediaSource, build_session, find_user_id

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests_oauthlib").setLevel(logging.WARNING)
    logging.getLogger("oauthlib").setLevel(logging.WARNING)

    # Download narration goes to stdout; every other channel stays on stderr.
    progress = logging.getLogger(PROGRESS_LOGGER_NAME)
    for handler in list(progress.handlers):
        progress.removeHandler(handler)
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter("%(message)s"))
    progress.addHandler(stdout_handler)
    progress.propagate = False


def _prompt_for_pin(authorize_url: str) -> str:
    print(f"Open this url: {authorize_url}")
    return input("Enter the PIN: ")


def _run_auth_twitter(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    token = authorize_pin(config.twitter, read_pin=_prompt_for_pin)
    print(f"access token: {token.key}")
    print(f"access secret: {token.secret}")


def _run_collect_twitter(args: argparse.Namespace, cancel: threading.Event) -> None:
    config = load_config(args.config)
    dest_dir = Path(args.dest_dir).expanduser()
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SystemExit(f"Cannot create destination directory {dest_dir}: {exc}") from exc

    session = build_session(config.twitter, user_agent=args.user_agent)
    user_id = find_user_id(session, args.screen_name)
    logger.info("Archiving media of @%s (id %s) into %s", args.screen_name.lstrip("@"), user_id, dest_dir)

    source = TimelineMediaSource(session, user_id)
    options = ArchiveOptions(dest_dir=dest_dir, overwrite=args.overwrite)
    archive_media(source, session=session, options=options, log=ChannelLog(), cancel=cancel)


def _install_cancel_handler(cancel: threading.Event) -> None:
    def _handle(signum, frame):  # noqa: ARG001 - signal handler signature
        logger.warning("Received signal %d; stopping after the current step.", signum)
        cancel.set()

    try:
        signal.signal(signal.SIGTERM, _handle)
    except ValueError:  # pragma: no cover - not on the main thread
        logger.debug("Cannot install SIGTERM handler outside the main thread")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mediarchive",
        description=(
            "Archive media posted by a Twitter account into a local directory. Each run resumes "
            "where the previous one stopped, based on the files already present."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=(
            "Path to the YAML settings file holding Twitter credentials. Defaults to ./settings.yml "
            "(override with MEDIARCHIVE_CONFIG)."
        ),
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO).",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="Custom User-Agent header to send with API requests.",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser(
        "auth-twitter",
        help="Run the PIN-based OAuth flow and print the access key/secret for the settings file.",
    )

    collect = subparsers.add_parser(
        "collect-twitter",
        help="Download media posted by an account that is not yet in the destination directory.",
    )
    collect.add_argument(
        "--screen-name",
        required=True,
        help="Account screen name (with or without the leading @).",
    )
    collect.add_argument(
        "--dest-dir",
        default=".",
        help="Directory where media files are stored (default: current directory).",
    )
    collect.add_argument(
        "--overwrite",
        action="store_true",
        help="Download again even when a file with the same name already exists.",
    )

    args = parser.parse_args(argv)
    if args.config is None:
        args.config = default_config_path()
    return args


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.log_level)

    cancel = threading.Event()
    _install_cancel_handler(cancel)

    try:
        if args.command == "auth-twitter":
            _run_auth_twitter(args)
        else:
            _run_collect_twitter(args, cancel)
    except ArchiveError as exc:
        raise SystemExit(f"{args.command} failed: {exc}") from exc
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        raise SystemExit(130) from None


if __name__ == "__main__":
    main()
