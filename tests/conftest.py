"""Shared fixtures: sample manifests and throwaway git remotes."""

import shutil
import subprocess
from pathlib import Path

import pytest

from imagebump.config import get_default_config


DEPLOYMENT = """\
# Deployment for the web tier
apiVersion: apps/v1
kind: Deployment
metadata:
  name: app
spec:
  template:
    spec:
      containers:
        - name: app
          image: registry.example.com/team/app:v1   # bumped by CI
        - name: worker
          image: "registry.example.com/team/app-worker:v1"
      initContainers:
        - name: migrate
          image: registry.example.com/team/app:v1
---
apiVersion: v1
kind: Service
metadata:
  name: app
spec:
  ports:
    - port: 80
"""

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd, *args) -> str:
    """Run git in cwd and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def manifest(tmp_path) -> Path:
    """A two-document deployment manifest on disk."""
    path = tmp_path / "app.yaml"
    path.write_text(DEPLOYMENT)
    return path


@pytest.fixture
def config():
    """Default config with retries that do not sleep."""
    config = get_default_config()
    config["git"]["base_delay"] = 0
    config["git"]["max_delay"] = 0
    config["git"]["network_retries"] = 1
    return config


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    """Isolate git from the user's global config and give it an identity."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Deploy Bot")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "deploy@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Deploy Bot")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "deploy@example.com")
    return home


@pytest.fixture
def remote_repo(tmp_path, git_env) -> Path:
    """A bare remote whose main branch holds deploy/app.yaml."""
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", str(remote))

    seed = tmp_path / "seed"
    git(tmp_path, "init", str(seed))
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    (seed / "deploy").mkdir()
    (seed / "deploy" / "app.yaml").write_text(DEPLOYMENT)
    git(seed, "add", ".")
    git(seed, "commit", "-m", "initial")
    git(seed, "remote", "add", "origin", str(remote))
    git(seed, "push", "origin", "main")
    return remote


@pytest.fixture
def clone(tmp_path, remote_repo):
    """Factory for fresh clones of the remote's main branch."""
    def make(name: str) -> Path:
        dest = tmp_path / name
        git(tmp_path, "clone", "-q", "-b", "main", str(remote_repo), str(dest))
        return dest
    return make


def remote_file(remote: Path, path: str = "deploy/app.yaml") -> str:
    """Content of a file at the tip of the remote's main branch."""
    return git(remote, "show", f"main:{path}") + "\n"
