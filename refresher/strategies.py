"""
strategies.py - Transfer Strategies for Blocklist Refresh

Each blocklist identifier maps to one transfer strategy:

    surriel  -> mirror_sync           rsync -a into the base directory
    dshield  -> filtered_download     HTTP GET, zero-padded octets normalized
    maldom   -> conditional_download  HTTP GET only when the remote timestamp is newer
    (other)  -> plain_download        HTTP GET straight into the cache file

A strategy returns True when it rewrote the cache file and False when it
decided no transfer was needed. Any failure is raised as TransferError.
Timeouts are enforced by the caller (see updater.run_strategy).
"""
from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Awaitable, Callable

import aiofiles
import aiofiles.tempfile
import aiohttp

from refresher.config import BlocklistEntry, RefreshConfig


CHUNK_SIZE = 64 * 1024
CACHE_FILE_MODE = 0o644

# Leading zeros of a digit run at line start or after a dot, keeping one digit
ZERO_PADDING_PATTERN = re.compile(r"(^|\.)0+(?=\d)")


class TransferError(Exception):
    """A fetch, sync or download failed."""


class TransferTimeout(TransferError):
    """A transfer did not finish within the configured timeout."""


Strategy = Callable[[aiohttp.ClientSession, BlocklistEntry, RefreshConfig], Awaitable[bool]]


def strip_leading_zeros(line: str) -> str:
    """
    Normalize zero-padded dotted numbers.

    "192.010.000.001" -> "192.10.0.1"
    "0075.0080"       -> "75.80"
    """
    return ZERO_PADDING_PATTERN.sub(r"\1", line)


def _filter_line(line: bytes) -> bytes:
    text = line.decode("utf-8", errors="surrogateescape")
    return strip_leading_zeros(text).encode("utf-8", errors="surrogateescape")


def _require_source(entry: BlocklistEntry) -> None:
    if not entry.source:
        raise TransferError("no source configured")


async def download(
    session: aiohttp.ClientSession,
    url: str,
    dest: Path,
    transform: Callable[[bytes], bytes] | None = None,
) -> None:
    """
    Stream url into dest, optionally transforming each line.

    The body is written to a uniquely named sibling .tmp file and renamed
    over dest, so a failed download leaves the previous file in place and
    concurrent downloads of the same dest never share a temp file.
    """
    temp_path = None
    try:
        async with session.get(url, allow_redirects=True) as response:
            if response.status >= 400:
                raise TransferError(f"HTTP {response.status}")

            async with aiofiles.tempfile.NamedTemporaryFile(
                "wb", dir=dest.parent, prefix=f"{dest.name}.", suffix=".tmp", delete=False
            ) as f:
                temp_path = Path(f.name)
                if transform is None:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
                else:
                    async for line in response.content:
                        await f.write(transform(line))

        temp_path.chmod(CACHE_FILE_MODE)
        temp_path.replace(dest)
    except (aiohttp.ClientError, OSError) as e:
        raise TransferError(str(e) or type(e).__name__) from e
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)


async def plain_download(
    session: aiohttp.ClientSession, entry: BlocklistEntry, config: RefreshConfig
) -> bool:
    _require_source(entry)
    await download(session, entry.source, config.cache_path(entry.name))
    return True


async def filtered_download(
    session: aiohttp.ClientSession, entry: BlocklistEntry, config: RefreshConfig
) -> bool:
    _require_source(entry)
    await download(session, entry.source, config.cache_path(entry.name), transform=_filter_line)
    return True


async def fetch_timestamp(session: aiohttp.ClientSession, url: str) -> int:
    """Fetch a bare epoch-seconds integer from url."""
    try:
        async with session.get(url, allow_redirects=True) as response:
            if response.status >= 400:
                raise TransferError(f"timestamp HTTP {response.status}")
            body = await response.text()
    except (aiohttp.ClientError, OSError) as e:
        raise TransferError(f"timestamp: {str(e) or type(e).__name__}") from e

    try:
        return int(body.strip())
    except ValueError:
        raise TransferError(f"invalid timestamp {body.strip()[:40]!r}") from None


def needs_refresh(path: Path, remote_timestamp: float) -> bool:
    """True when path is missing or older than remote_timestamp."""
    try:
        local_mtime = path.stat().st_mtime
    except FileNotFoundError:
        return True
    return remote_timestamp > local_mtime


async def conditional_download(
    session: aiohttp.ClientSession, entry: BlocklistEntry, config: RefreshConfig
) -> bool:
    _require_source(entry)
    # Without a local copy there is nothing to compare against
    if config.cache_path(entry.name).exists():
        remote_timestamp = await fetch_timestamp(session, config.timestamp_url)
        if not needs_refresh(config.cache_path(entry.name), remote_timestamp):
            return False
    return await plain_download(session, entry, config)


async def mirror_sync(
    session: aiohttp.ClientSession, entry: BlocklistEntry, config: RefreshConfig
) -> bool:
    """Mirror the source into the base directory with rsync -a."""
    _require_source(entry)
    cmd = [str(config.rsync), "-a", entry.source, f"{config.basedir}/"]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TransferError(f"cannot run {cmd[0]}: {e}") from e

    try:
        _, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise TransferError(f"rsync exited with status {proc.returncode}: {detail}")
    return True


# Identifier -> strategy; anything unlisted uses plain_download
STRATEGIES: dict[str, Strategy] = {
    "surriel": mirror_sync,
    "dshield": filtered_download,
    "maldom": conditional_download,
}


def register_strategy(name: str, strategy: Strategy) -> None:
    STRATEGIES[name] = strategy


def select_strategy(name: str) -> Strategy:
    return STRATEGIES.get(name, plain_download)
