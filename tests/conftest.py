import os
import stat
import subprocess
from collections.abc import Generator
from pathlib import Path
from typing import Optional

import pytest

from gitscribe.providers.base import BaseDriver, InvokeRequest, ModelDefinition
from gitscribe.providers.descriptors import ProviderDescriptor, ProviderMode

_PROVIDER_ENV_VARS = (
    "OPENROUTER_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_GENERATIVE_AI_API_KEY",
    "CEREBRAS_API_KEY",
    "GITSCRIBE_PROVIDER",
    "GITSCRIBE_MODEL",
    "GITSCRIBE_REQUEST_TIMEOUT",
    "GITSCRIBE_MAX_RETRIES",
    "GITSCRIBE_DEBUG",
    "GITSCRIBE_SLOW_WARNING",
    "VISUAL",
    "EDITOR",
)


@pytest.fixture(autouse=True)
def isolated_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Strip real credentials and keep persisted config inside tmp_path."""
    for name in list(os.environ):
        if name in _PROVIDER_ENV_VARS or name.endswith("_API_KEY"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITSCRIBE_CONFIG_HOME", str(tmp_path / ".gitscribe"))
    yield


class FakeDriver(BaseDriver):
    """Scripted adapter: returns queued replies or raises queued errors."""

    def __init__(self, replies: list, provider_id: str = "fake") -> None:
        super().__init__(
            ProviderDescriptor(
                id=provider_id,
                name="Fake",
                mode=ProviderMode.API,
                default_model="fake-model",
            )
        )
        self.replies = list(replies)
        self.requests: list[InvokeRequest] = []

    async def _invoke(self, request: InvokeRequest) -> str:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return await reply(request)
        return reply

    def check_available(self) -> bool:
        return True

    async def fetch_models(
        self, api_key: Optional[str] = None
    ) -> list[ModelDefinition]:
        return [ModelDefinition("fake-model", "Fake Model", 0)]


@pytest.fixture
def fake_driver_factory():
    return FakeDriver


@pytest.fixture
def fake_bin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Create executable shell scripts on a PATH of their own."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _make(name: str, script: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + script)
        path.chmod(path.stat().st_mode | stat.S_IEXEC)
        return path

    return _make


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q", "-b", "main")
    _git(repo, "config", "user.email", "dev@example.com")
    _git(repo, "config", "user.name", "Dev")
    _git(repo, "config", "commit.gpgsign", "false")
    return repo


@pytest.fixture
def git():
    return _git
