"""Shared fixtures: throwaway git repositories, SSH keys, policies and an HTTP client."""

import json
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import paramiko
import pytest
from httpx import ASGITransport, AsyncClient

from main import create_app
from models.settings import GitModule, ServerSettings
from policy_store import PolicyStore
from signature import sign
from sync_engine import SyncEngine

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

WEBHOOK_SECRET = "It's a Secret to Everybody"
USER_AGENT = "GitHub-Hookshot/044aadd"

_GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test User",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test User",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}


def git(cwd, *args) -> str:
    """Run a git command for test setup and return its stdout."""
    result = subprocess.run(
        ["git", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        env={**os.environ, **_GIT_ENV},
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str = None) -> str:
    """Write ``name`` in ``repo``, commit it and return the new commit id."""
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message or f"update {name}")
    return git(repo, "rev-parse", "HEAD")


@dataclass
class Repos:
    upstream: Path
    seed: Path
    mirror: Path

    def push_upstream(self, name: str, content: str) -> str:
        """Commit in the seed clone and push it, as a developer would."""
        sha = commit_file(self.seed, name, content)
        git(self.seed, "push", "-q", "origin", "main")
        return sha

    def mirror_head(self) -> str:
        return git(self.mirror, "rev-parse", "refs/heads/main")


@pytest.fixture
def repos(tmp_path: Path) -> Repos:
    """An upstream bare repository, a clone to push from and a mirror to sync."""
    upstream = tmp_path / "upstream.git"
    seed = tmp_path / "seed"
    mirror = tmp_path / "mirror"

    upstream.mkdir()
    git(upstream, "init", "-q", "--bare")
    git(upstream, "symbolic-ref", "HEAD", "refs/heads/main")

    seed.mkdir()
    git(seed, "init", "-q")
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(seed, "README.md", "hello\n", "initial commit")
    git(seed, "remote", "add", "origin", str(upstream))
    git(seed, "push", "-q", "origin", "main")

    git(tmp_path, "clone", "-q", str(upstream), str(mirror))
    return Repos(upstream=upstream, seed=seed, mirror=mirror)


@pytest.fixture(scope="session")
def ssh_key_path(tmp_path_factory) -> str:
    path = tmp_path_factory.mktemp("ssh") / "id_rsa"
    paramiko.RSAKey.generate(2048).write_private_key_file(str(path))
    return str(path)


def make_entry(path, ssh_key_path, repo_name="acme/repo", secret=WEBHOOK_SECRET, **action) -> dict:
    return {
        "service": "GitHub",
        "repo_name": repo_name,
        "secret": secret,
        "event": "push",
        "action": {
            "kind": "Pull",
            "path": str(path),
            "remote": "origin",
            "branch": "main",
            "ssh_key_path": ssh_key_path,
            **action,
        },
    }


def make_body(name="repo", full_name="acme/repo") -> bytes:
    payload = {
        "repository": {
            "name": name,
            "full_name": full_name,
            "private": False,
            "owner": {"login": full_name.split("/")[0], "id": 1},
            "html_url": "h",
            "ssh_url": "s",
        }
    }
    return json.dumps(payload, separators=(",", ":")).encode()


def make_headers(body: bytes, secret: str = WEBHOOK_SECRET, **overrides) -> dict:
    headers = {
        "User-Agent": USER_AGENT,
        "X-GitHub-Event": "push",
        "X-Hub-Signature-256": sign(secret.encode(), body),
        "Content-Type": "application/json",
    }
    headers.update(overrides)
    return {key: value for key, value in headers.items() if value is not None}


@pytest.fixture
def store(repos: Repos, ssh_key_path: str) -> PolicyStore:
    return PolicyStore.from_entries([make_entry(repos.mirror, ssh_key_path)])


@pytest.fixture
def settings() -> ServerSettings:
    return ServerSettings(modules=[GitModule(mount_path="/git")])


@pytest.fixture
async def client(settings: ServerSettings, store: PolicyStore):
    app = create_app(settings, store, SyncEngine(timeout=30))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """The service runs on asyncio (uvicorn); run async tests on that backend only."""
    return "asyncio"
