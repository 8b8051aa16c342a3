"""
config.py - Runtime Configuration and Blocklists File Loader

The blocklists file lists one entry per line:

    <identifier> <source>

The identifier names the cache file written under the base directory and
selects the transfer strategy; the source is a URL (or an rsync location).
"""
from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple


# Default configuration
DEFAULT_BASEDIR = Path(".")  # the working directory the refresher is started from
DEFAULT_CONFIG_FILE = "blocklists"
DEFAULT_TIMEOUT = 300
DEFAULT_CONCURRENCY = 0  # 0 = one concurrent task per entry

# External transfer tool locations
DEFAULT_BINDIR = Path("/usr/bin")
ALTERNATE_BINDIR = Path("/opt/local/bin")
TRANSFER_TOOL = "rsync"

# Epoch timestamp published next to the malware domains list
DEFAULT_TIMESTAMP_URL = "http://mirror1.malwaredomains.com/files/timestamp"


class ConfigError(Exception):
    """The blocklists file could not be read."""


class BlocklistEntry(NamedTuple):
    """A single configured blocklist."""
    name: str
    source: str


@dataclass(frozen=True)
class RefreshConfig:
    """Settings shared by every refresh task, built once at startup."""
    basedir: Path
    config_file: Path
    bindir: Path
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    timestamp_url: str = DEFAULT_TIMESTAMP_URL

    def cache_path(self, name: str) -> Path:
        """Path of the cached file for a blocklist identifier."""
        return self.basedir / name

    @property
    def rsync(self) -> Path:
        return self.bindir / TRANSFER_TOOL

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> RefreshConfig:
        basedir = Path(args.basedir)
        config_file = Path(args.config) if args.config else basedir / DEFAULT_CONFIG_FILE
        bindir = Path(args.bindir) if args.bindir else find_bindir()
        return cls(
            basedir=basedir,
            config_file=config_file,
            bindir=bindir,
            timeout=args.timeout,
            concurrency=max(args.concurrency, 0),
            timestamp_url=args.timestamp_url,
        )


def find_bindir(
    alternate: Path = ALTERNATE_BINDIR,
    default: Path = DEFAULT_BINDIR,
    tool: str = TRANSFER_TOOL,
) -> Path:
    """Prefer the alternate install location when it holds the transfer tool."""
    if (alternate / tool).exists():
        return alternate
    return default


def parse_line(line: str) -> BlocklistEntry | None:
    """
    Split a config line into identifier and source.

    Returns None for blank and comment lines. A line without a source
    yields an entry with an empty source.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    parts = line.split(None, 1)
    name = parts[0]
    source = parts[1].strip() if len(parts) > 1 else ""
    return BlocklistEntry(name, source)


def load_blocklists(config_file: str | Path) -> list[BlocklistEntry]:
    """Load blocklist entries in file order."""
    path = Path(config_file)
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.readlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read blocklists file {path}: {e}") from e

    entries = []
    for lineno, line in enumerate(lines, start=1):
        entry = parse_line(line)
        if entry is None:
            continue
        if not entry.source:
            print(f"Warning: {path}:{lineno}: no source for '{entry.name}'", file=sys.stderr)
        entries.append(entry)

    return entries
