import argparse
from pathlib import Path

import pytest

from refresher.config import (
    DEFAULT_TIMESTAMP_URL,
    BlocklistEntry,
    ConfigError,
    RefreshConfig,
    find_bindir,
    load_blocklists,
    parse_line,
)


def test_parse_line_splits_on_first_whitespace_run():
    assert parse_line("dshield \t http://example/block.txt\n") == BlocklistEntry(
        "dshield", "http://example/block.txt"
    )


def test_parse_line_keeps_rest_of_line_as_source():
    assert parse_line("surriel rsync://host/path extra").source == "rsync://host/path extra"


def test_parse_line_skips_blank_and_comment_lines():
    assert parse_line("\n") is None
    assert parse_line("   ") is None
    assert parse_line("# maldom http://example") is None


def test_parse_line_without_source():
    assert parse_line("orphan\n") == BlocklistEntry("orphan", "")


def test_load_blocklists_preserves_order(tmp_path):
    path = tmp_path / "blocklists"
    path.write_text(
        "# cached lists\n"
        "surriel rsync://rsync.example/blacklist\n"
        "\n"
        "dshield http://example/dshield.txt\n"
        "maldom http://example/maldom.txt\n",
        encoding="utf-8",
    )

    entries = load_blocklists(path)

    assert [e.name for e in entries] == ["surriel", "dshield", "maldom"]
    assert entries[1].source == "http://example/dshield.txt"


def test_load_blocklists_passes_malformed_line_through(tmp_path, capsys):
    path = tmp_path / "blocklists"
    path.write_text("good http://example/a\nbroken\n", encoding="utf-8")

    entries = load_blocklists(path)

    assert entries == [BlocklistEntry("good", "http://example/a"), BlocklistEntry("broken", "")]
    assert "2: no source for 'broken'" in capsys.readouterr().err


def test_load_blocklists_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_blocklists(tmp_path / "missing")


def test_find_bindir_prefers_alternate(tmp_path):
    alternate = tmp_path / "opt"
    default = tmp_path / "usr"
    alternate.mkdir()
    (alternate / "rsync").touch()

    assert find_bindir(alternate, default) == alternate


def test_find_bindir_falls_back_to_default(tmp_path):
    assert find_bindir(tmp_path / "opt", tmp_path / "usr") == tmp_path / "usr"


def test_from_args_derives_config_file_from_basedir(tmp_path):
    args = argparse.Namespace(
        basedir=str(tmp_path),
        config=None,
        bindir="/custom/bin",
        timeout=10.0,
        concurrency=-3,
        timestamp_url=DEFAULT_TIMESTAMP_URL,
    )

    config = RefreshConfig.from_args(args)

    assert config.config_file == tmp_path / "blocklists"
    assert config.rsync == Path("/custom/bin/rsync")
    assert config.concurrency == 0
    assert config.cache_path("maldom") == tmp_path / "maldom"
