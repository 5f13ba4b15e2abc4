#!/usr/bin/env python3
"""Operator entry point: resolve references and manage the on-disk cache."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from discord_media_player.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from discord_media_player.config.container import Container

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.warning(
            "Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH
        )
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger().setLevel(resolved_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discord-media-player",
        description="Resolve media references and manage the audio cache.",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Resolve a URL or search term and print the stream")
    resolve.add_argument("query", help="URL, video ID or search term")
    resolve.add_argument("--duration", type=float, default=None, help="Duration hint in seconds")

    cache = sub.add_parser("cache", help="Inspect or maintain the on-disk cache")
    cache.add_argument("action", choices=["stats", "rebuild", "clear"])
    return parser


async def _resolve(container: Container, query: str, duration: float | None) -> int:
    from discord_media_player.domain.media.entities import TrackReference
    from discord_media_player.domain.media.exceptions import AllProvidersFailed

    ref = TrackReference(query=query, duration_hint=duration)
    try:
        stream = await container.source_resolver.resolve(ref)
    except AllProvidersFailed as e:
        logging.getLogger(__name__).error(LogTemplates.CLI_RESOLVE_FAILED, query, e)
        return 1
    print(stream.model_dump_json(indent=2))
    return 0


async def _cache(container: Container, action: str) -> int:
    store = container.cache_store
    await store.initialize()
    if action == "rebuild":
        count = await store.rebuild_index()
        print(json.dumps({"entries": count}))
    elif action == "clear":
        removed = await store.clear()
        print(json.dumps({"removed": removed}))
    else:
        print(json.dumps(store.stats(), indent=2))
    return 0


async def run(args: argparse.Namespace) -> int:
    from discord_media_player.config.container import create_container
    from discord_media_player.config.settings import get_settings

    container = create_container(get_settings())
    try:
        if args.command == "resolve":
            return await _resolve(container, args.query, args.duration)
        return await _cache(container, args.action)
    finally:
        await container.shutdown()


def main(argv: list[str] | None = None) -> int:
    from discord_media_player.config.settings import get_settings

    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    logger = logging.getLogger(__name__)
    logger.debug(LogTemplates.CLI_STARTING, args.command, settings.environment)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info(LogTemplates.CLI_INTERRUPTED)
        return 130
    except Exception as e:
        logger.exception(LogTemplates.CLI_FATAL_ERROR, e)
        return 1


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
