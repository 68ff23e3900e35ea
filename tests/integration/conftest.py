"""
Integration test configuration.

The whole app is built through create_app() against a throwaway SQLite
database. Redis is left unconfigured, Elasticsearch, the mail provider and
the image host are replaced by in-process fakes injected through the
factory's keyword arguments, and the scheduler is switched off.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import AppSettings, _read_yaml
from infrastructure.db.storage import Storage
from infrastructure.images.protocol import UploadedImage


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


@pytest.fixture(autouse=True)
def test_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("AUTH_SECRET", "integration-secret")
    monkeypatch.setenv("AUTH_HASH_TIME_COST", "1")
    monkeypatch.setenv("AUTH_HASH_MEMORY_COST", "8")
    monkeypatch.setenv("AUTH_HASH_PARALLELISM", "1")
    monkeypatch.setenv("APP_INIT_DB", "true")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("SERVER_BURST", "1000")
    _read_yaml.cache_clear()
    yield
    _read_yaml.cache_clear()


class CapturingEmail:
    """Keeps the last code mailed to each address."""

    def __init__(self) -> None:
        self.codes: dict[str, str] = {}

    async def send_verification_email(
        self, email: str, nickname: Optional[str], code: str, *, resend: bool = False
    ) -> bool:
        self.codes[email] = code
        return True


@pytest.fixture
def email() -> CapturingEmail:
    return CapturingEmail()


@pytest.fixture
def search_client() -> AsyncMock:
    client = AsyncMock()
    client.ping.return_value = True
    client.search.return_value = {"hits": {"hits": []}}
    return client


@pytest.fixture
def image_host() -> MagicMock:
    host = MagicMock()
    host.upload = AsyncMock(
        side_effect=lambda data, filename, folder: UploadedImage(
            url=f"https://cdn.example.com/{folder}/{filename}.png",
            public_id=f"{folder}/{filename}",
        )
    )
    host.delete = AsyncMock()
    host.public_id_from_url.return_value = ""
    return host


@pytest.fixture
def client(tmp_path, email, search_client, image_host):
    app = create_app(
        AppSettings(),
        storage=Storage.from_url(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"),
        redis_client=None,
        search_client=search_client,
        email_provider=email,
        image_host=image_host,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client, email):
    """Run the verify → register flow for a fresh account and return its credentials."""

    def _register(login: str = "cat", password: str = "long-enough-password") -> dict:
        body = {
            "nickname": login.title(),
            "login": login,
            "email": f"{login}@example.com",
            "password": password,
        }
        resp = client.post("/api/auth/verify", json=body)
        assert resp.status_code == 200, resp.text
        resp = client.post(
            "/api/auth/register",
            json={"email": body["email"], "code": email.codes[body["email"]]},
        )
        assert resp.json() == {"success": True, "message": "registered"}
        return body

    return _register


@pytest.fixture
def logged_in(client, register):
    creds = register()
    resp = client.post(
        "/api/auth/login", json={"login": creds["login"], "password": creds["password"]}
    )
    assert resp.status_code == 200, resp.text
    return resp.json()
