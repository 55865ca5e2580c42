"""Process environment handed to the backup tool.

This module is the only place that reads ``os.environ``. Everything below
it receives an explicit mapping.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

# Kubernetes injects <SERVICE>_PORT / <SERVICE>_SERVICE_* variables for every
# service in the namespace. pgBackRest parses every PGBACKREST_* variable as an
# option and prints a warning on stdout for these, corrupting `info` JSON.
SERVICE_ENV_VAR_PATTERN = re.compile(r"^PGBACKREST_(?:[A-Z0-9]+_)*(?:PORT|SERVICE)")


def strip_service_variables(env: Mapping[str, str]) -> dict[str, str]:
    """Return ``env`` without backup-tool-prefixed service discovery variables."""
    return {
        name: value
        for name, value in env.items()
        if not SERVICE_ENV_VAR_PATTERN.match(name)
    }


def sanitized_environ() -> dict[str, str]:
    """Return a copy of the process environment safe to pass to the backup tool."""
    return strip_service_variables(os.environ)


def merge_env(base: Mapping[str, str], incoming: Mapping[str, str]) -> dict[str, str]:
    """Overlay ``incoming`` on ``base``; incoming values win."""
    merged = dict(base)
    merged.update(incoming)
    return merged
