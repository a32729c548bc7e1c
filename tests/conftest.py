from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Every test writes under tmp_path and never reaches a real provider."""
    monkeypatch.setenv("RECORD_DIR", str(tmp_path / "recordings" / "tmp"))
    monkeypatch.setenv("RECORDINGS_DIR", str(tmp_path / "recordings"))
    monkeypatch.setenv("ANALYSES_DIR", str(tmp_path / "analyses"))
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "")
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.setenv("STOP_GRACE_SEC", "0.2")
    return tmp_path
