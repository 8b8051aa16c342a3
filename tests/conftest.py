import contextlib
from pathlib import Path

import pytest
from aiohttp import web

from refresher.config import RefreshConfig


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> RefreshConfig:
        settings = {
            "basedir": tmp_path,
            "config_file": tmp_path / "blocklists",
            "bindir": tmp_path / "bin",
            "timeout": 5,
        }
        settings.update(overrides)
        return RefreshConfig(**settings)
    return _make


@pytest.fixture
def serve():
    """Serve aiohttp routes on a random local port for the duration of the block."""
    @contextlib.asynccontextmanager
    async def _serve(routes):
        app = web.Application()
        app.add_routes(routes)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        port = runner.addresses[0][1]
        try:
            yield f"http://127.0.0.1:{port}"
        finally:
            await runner.cleanup()
    return _serve


@pytest.fixture
def fake_rsync(tmp_path):
    """Write an executable shell script standing in for rsync."""
    def _write(body: str) -> Path:
        bindir = tmp_path / "bin"
        bindir.mkdir(exist_ok=True)
        script = bindir / "rsync"
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(0o755)
        return bindir
    return _write
