"""Build metadata exposed at runtime.

APP_VERSION comes from the APP_VERSION environment variable in CI and falls
back to the installed distribution's version. GIT_COMMIT falls back to
reading from git directly for local development.
"""

import os
import subprocess
from importlib import metadata

DISTRIBUTION_NAME = "mathhack-arena"


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


def _installed_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION") or _installed_version()
GIT_COMMIT: str = os.environ.get("GIT_COMMIT") or _git_short_sha()
