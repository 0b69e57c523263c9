from fastapi.testclient import TestClient
from pytest import MonkeyPatch, raises

from app.main import create_app


def test_health_ok() -> None:
    """The built-in health probe should respond with a static payload."""
    client = TestClient(create_app())
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_app_refuses_to_start_without_secret_key(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with raises(RuntimeError, match="SECRET_KEY"):
        create_app()
