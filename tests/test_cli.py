from __future__ import annotations

from pathlib import Path
from typing import Any

import requests
from pytest import CaptureFixture, MonkeyPatch


def _use_db(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path}/cli.db")


def test_adduser_creates_login(monkeypatch: MonkeyPatch, tmp_path: Path, capsys: CaptureFixture[str]) -> None:
    from app.cli import main
    from app.db import session_factory
    from app.users import authenticate

    _use_db(monkeypatch, tmp_path)
    assert main(["adduser", "ops@example.com", "hunter22"]) == 0
    assert "created user ops@example.com" in capsys.readouterr().out

    db = session_factory()()
    try:
        assert authenticate(db, "ops@example.com", "hunter22") is not None
        assert authenticate(db, "ops@example.com", "nope") is None
    finally:
        db.close()


def test_adduser_rejects_duplicates_and_bad_addresses(
    monkeypatch: MonkeyPatch, tmp_path: Path, capsys: CaptureFixture[str]
) -> None:
    from app.cli import main

    _use_db(monkeypatch, tmp_path)
    assert main(["adduser", "ops@example.com", "pw"]) == 0
    assert main(["adduser", "ops@example.com", "pw"]) == 1
    assert main(["adduser", "not-an-email", "pw"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_ingest_command(monkeypatch: MonkeyPatch, tmp_path: Path, capsys: CaptureFixture[str]) -> None:
    from app.cli import main

    class _Resp:
        status_code = 200

        def json(self) -> Any:
            return [{"symbol": "ETHBTC", "price": "0.05"}]

    _use_db(monkeypatch, tmp_path)
    monkeypatch.setattr(requests, "get", lambda url, timeout=10: _Resp())

    assert main(["ingest"]) == 0
    assert "stored 1 prices" in capsys.readouterr().out
