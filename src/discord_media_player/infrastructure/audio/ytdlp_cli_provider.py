"""Fallback metadata provider that shells out to the yt-dlp binary."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from discord_media_player.application.interfaces.metadata_provider import MetadataProvider
from discord_media_player.config.settings import ProviderSettings
from discord_media_player.domain.media.entities import MediaInfo, TrackReference
from discord_media_player.domain.media.exceptions import ProviderUnavailable
from discord_media_player.domain.shared.constants import ProviderConstants
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_media_player.infrastructure.audio.models import (
    LOG_URL_TRUNCATE,
    build_target,
    parse_media_info,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
STDERR_TAIL_CHARS = 500


class YtDlpCliProvider(MetadataProvider):
    """Runs ``yt-dlp --dump-json`` as a subprocess.

    It is independent of the in-process library state, so it still works when
    the library's cached player scripts or session are broken. Output is capped,
    and the process is killed on timeout or cancellation.
    """

    def __init__(self, settings: ProviderSettings | None = None) -> None:
        self._settings = settings or ProviderSettings()

    @property
    def name(self) -> str:
        return ProviderConstants.CLI_PROVIDER_NAME

    async def fetch_info(self, ref: TrackReference) -> MediaInfo:
        target = build_target(ref)
        started = time.perf_counter()

        stdout = await self._run(
            [*ProviderConstants.CLI_INFO_ARGS, target],
            timeout=self._settings.timeout_seconds,
        )
        info = parse_media_info(self.name, self._decode_payload(stdout))

        logger.debug(
            LogTemplates.PROVIDER_FETCHED,
            self.name,
            target[:LOG_URL_TRUNCATE],
            len(info.formats),
            info.is_live,
            (time.perf_counter() - started) * 1000,
        )
        return info

    async def is_available(self) -> bool:
        """Probe ``yt-dlp --version``."""
        try:
            stdout = await self._run(
                ["--version"], timeout=ProviderConstants.VERSION_PROBE_TIMEOUT_SECONDS
            )
        except ProviderUnavailable as e:
            logger.debug(LogTemplates.YTDLP_CLI_UNAVAILABLE, e.reason)
            return False
        logger.debug(LogTemplates.YTDLP_CLI_VERSION, stdout.decode(errors="replace").strip())
        return True

    def _decode_payload(self, stdout: bytes) -> Any:
        """Search results are printed as one JSON document per line; the first one wins."""
        for line in stdout.decode("utf-8", errors="replace").splitlines():
            if line.strip():
                try:
                    return json.loads(line)
                except json.JSONDecodeError as e:
                    raise ProviderUnavailable(
                        self.name, ErrorMessages.UNPARSEABLE_PROVIDER_RESPONSE.format(error=e)
                    ) from e
        raise ProviderUnavailable(self.name, ErrorMessages.EMPTY_PROVIDER_RESPONSE)

    async def _run(self, args: list[str], timeout: float) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._settings.ytdlp_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProviderUnavailable(self.name, ErrorMessages.YTDLP_BINARY_NOT_FOUND) from e
        except PermissionError as e:
            raise ProviderUnavailable(self.name, str(e)) from e

        try:
            async with asyncio.timeout(timeout):
                stdout, stderr = await asyncio.gather(
                    self._read_capped(proc.stdout, self._settings.cli_max_output_bytes),
                    self._read_capped(proc.stderr, self._settings.cli_max_output_bytes),
                )
                returncode = await proc.wait()
        except TimeoutError as e:
            await self._kill(proc)
            raise ProviderUnavailable(
                self.name, ErrorMessages.PROVIDER_TIMEOUT.format(seconds=timeout)
            ) from e
        except (asyncio.CancelledError, ProviderUnavailable):
            await self._kill(proc)
            raise

        if stderr:
            logger.debug(LogTemplates.YTDLP_CLI_STDERR, stderr.decode(errors="replace").strip())

        if returncode != 0:
            tail = stderr.decode(errors="replace").strip()[-STDERR_TAIL_CHARS:]
            raise ProviderUnavailable(
                self.name,
                ErrorMessages.YTDLP_CLI_FAILED.format(code=returncode, stderr=tail or "no output"),
            )
        return stdout

    async def _read_capped(self, stream: asyncio.StreamReader | None, limit: int) -> bytes:
        if stream is None:
            return b""
        chunks: list[bytes] = []
        total = 0
        while chunk := await stream.read(READ_CHUNK_SIZE):
            total += len(chunk)
            if total > limit:
                raise ProviderUnavailable(
                    self.name, ErrorMessages.YTDLP_OUTPUT_TOO_LARGE.format(limit=limit)
                )
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                return
        try:
            async with asyncio.timeout(1.0):
                await proc.wait()
        except TimeoutError:
            logger.warning(LogTemplates.YTDLP_CLI_KILL_TIMEOUT, proc.pid)
