import asyncio
import json
from typing import Callable, Optional

import httpx
import pytest

from leadflow.config import get_settings
from leadflow.models.contact import ApolloContact, ApolloOrganization, ValidatedContact


@pytest.fixture(autouse=True)
def _test_env(monkeypatch, tmp_path):
    # Dummy credentials, isolated state/log dirs
    monkeypatch.setenv("APOLLO_API_KEY", "test_apollo_key")
    monkeypatch.setenv("INSTANTLY_API_KEY", "test_instantly_key")
    monkeypatch.setenv("STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "leadflow.log"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def no_credentials(monkeypatch):
    # an empty value overrides anything a stray .env might provide
    monkeypatch.setenv("APOLLO_API_KEY", "")
    monkeypatch.setenv("INSTANTLY_API_KEY", "")
    get_settings.cache_clear()


def run(coro):
    return asyncio.run(coro)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content.decode("utf-8"))


def fake_contact(
    i: int,
    email: Optional[str] = "default",
    status: Optional[str] = "verified",
    company: Optional[str] = "Acme",
) -> ApolloContact:
    if email == "default":
        email = f"person{i}@example{i}.com"
    return ApolloContact(
        id=f"apollo_{i}",
        first_name=f"First{i}",
        last_name=f"Last{i}",
        email=email,
        email_status=status,
        title="CEO",
        organization=ApolloOrganization(id=f"org_{i}", name=company) if company else None,
        linkedin_url=f"https://linkedin.com/in/person{i}",
    )


def fake_validated(i: int, email: Optional[str] = None) -> ValidatedContact:
    return ValidatedContact(
        apollo_id=f"apollo_{i}",
        email=email or f"person{i}@example{i}.com",
        first_name=f"First{i}",
        last_name=f"Last{i}",
        title="CEO",
        company="Acme",
        linkedin_url=f"https://linkedin.com/in/person{i}",
    )
