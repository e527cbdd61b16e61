from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from importlib import metadata


API_VERSION = "v1"
SESSION_SCHEMA_VERSION = "v1"
DIST_NAME = "contract-source-verifier"


def _run_git(args: list[str]) -> str:
    try:
        out = subprocess.check_output(["git"] + args, stderr=subprocess.DEVNULL)
        return out.decode("utf-8").strip()
    except (OSError, subprocess.CalledProcessError):
        return ""


def get_build_git_sha() -> str:
    sha = os.environ.get("SRCV_BUILD_GIT_SHA", "").strip()
    if sha:
        return sha
    return _run_git(["rev-parse", "HEAD"]) or "UNKNOWN"


def get_repo_version() -> str:
    v = os.environ.get("SRCV_REPO_VERSION", "").strip()
    if v:
        return v
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return _run_git(["describe", "--tags", "--always", "--dirty"]) or "0.0.0"


@dataclass(frozen=True)
class BuildMeta:
    api_version: str
    repo_version: str
    build_git_sha: str
    session_schema_version: str


@lru_cache(maxsize=1)
def build_meta() -> BuildMeta:
    return BuildMeta(
        api_version=API_VERSION,
        repo_version=get_repo_version(),
        build_git_sha=get_build_git_sha(),
        session_schema_version=SESSION_SCHEMA_VERSION,
    )
