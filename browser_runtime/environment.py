"""Container environment detection."""

from __future__ import annotations

import functools
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

CONTAINER_MARKER_FILE = Path("/.dockerenv")
INIT_CGROUP_FILE = Path("/proc/1/cgroup")
CONTAINER_CGROUP_MARKERS = ("docker", "kubepods")
CONTAINER_ENV_VARS = ("KUBERNETES_SERVICE_HOST", "DOCKER_CONTAINER", "DOCKER_HOST")


def is_running_in_container(
    *,
    marker_file: Path = CONTAINER_MARKER_FILE,
    cgroup_file: Path = INIT_CGROUP_FILE,
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
) -> bool:
    """Best-effort probe; any failure means "not a container"."""
    try:
        if marker_file.exists():
            return True

        if (platform or sys.platform).startswith("linux"):
            try:
                cgroup = cgroup_file.read_text(encoding="utf-8")
            except OSError:
                cgroup = ""
            if any(marker in cgroup for marker in CONTAINER_CGROUP_MARKERS):
                return True

        env = os.environ if environ is None else environ
        return any(env.get(name) for name in CONTAINER_ENV_VARS)
    except Exception:
        return False


@functools.lru_cache(maxsize=1)
def default_add_container_args() -> bool:
    """Process-wide default for ``add_container_args``.

    Probed once per process. Call ``default_add_container_args.cache_clear()``
    to probe again.
    """
    return is_running_in_container()
