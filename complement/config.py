"""Test-run configuration read from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class ComplementConfig:
    """Settings that control how homeserver images are built and run."""

    base_image_uri: str = ""
    base_image_args: list[str] = field(default_factory=list)
    debug_logging_enabled: bool = False
    best_effort: bool = False
    version_check_iterations: int = 100
    keep_blueprints: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ComplementConfig:
        """Build a configuration from COMPLEMENT_* environment variables.

        Raises ValueError if COMPLEMENT_BASE_IMAGE is not set.
        """
        env = os.environ if environ is None else environ
        cfg = cls(
            base_image_uri=env.get("COMPLEMENT_BASE_IMAGE", ""),
            base_image_args=env.get("COMPLEMENT_BASE_IMAGE_ARGS", "").split(" "),
            debug_logging_enabled=env.get("COMPLEMENT_DEBUG", "") == "1",
            version_check_iterations=parse_env_with_default(
                env, "COMPLEMENT_VERSION_CHECK_ITERATIONS", 100
            ),
            keep_blueprints=env.get("COMPLEMENT_KEEP_BLUEPRINTS", "").split(" "),
        )
        if not cfg.base_image_uri:
            raise ValueError("COMPLEMENT_BASE_IMAGE must be set")
        return cfg


def parse_env_with_default(environ: Mapping[str, str], key: str, default: int) -> int:
    """Read an integer from `environ`, falling back to `default` if unset or invalid."""
    raw = environ.get(key, "")
    if not raw:
        return default
    if not _INT_RE.fullmatch(raw):
        return default
    value = int(raw)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return default
    return value