from __future__ import annotations

from pathlib import Path

import pytest

GATEWAY_ENV = ("MCP_SECRET", "DATABASE_URL", "PORT", "MCP_HTTP_MODE", "PGPORTAL_TRACE")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host env vars and config files out of every test."""
    for name in GATEWAY_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
