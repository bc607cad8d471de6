"""Platform and runtime capability detection.

Availability predicates for on-device providers depend on what the host can
do (GPU acceleration, physical memory, whether a desktop command channel is
attached). Detection lives here so that predicates stay pure functions of a
:class:`RuntimeInfo` snapshot and tests can substitute one.

Usage:
    from polyprovider.utils.platform import detect_runtime

    runtime = detect_runtime()
    if runtime.has_gpu or (runtime.memory_gb or 0) >= 8:
        ...
"""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal, Optional


PlatformType = Literal["windows", "linux", "macos", "unknown"]


class Platform:
    """Platform detection constants."""

    WINDOWS: Final = "win32"
    LINUX: Final = "linux"
    MACOS: Final = "darwin"

    @staticmethod
    def get_system() -> PlatformType:
        platform = sys.platform.lower()
        if platform.startswith("win"):
            return "windows"
        if platform == Platform.MACOS:
            return "macos"
        if platform.startswith("linux") or "bsd" in platform:
            return "linux"
        return "unknown"


def is_macos() -> bool:
    return sys.platform == Platform.MACOS


def is_linux() -> bool:
    return sys.platform.startswith(Platform.LINUX)


def physical_memory_gb() -> Optional[float]:
    """Return installed physical memory in GiB, or None when unknown."""
    try:
        page_size = os.sysconf("SC_PAGE_SIZE")
        pages = os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, OSError, ValueError):
        return None
    if page_size <= 0 or pages <= 0:
        return None
    return page_size * pages / (1024**3)


def has_gpu_acceleration() -> bool:
    """Best-effort check for a usable GPU compute backend."""
    # Apple silicon always exposes Metal.
    if is_macos():
        return True
    if shutil.which("nvidia-smi"):
        return True
    if is_linux() and Path("/dev/dri").exists():
        return any(entry.name.startswith("renderD") for entry in Path("/dev/dri").iterdir())
    return False


@dataclass(frozen=True)
class RuntimeInfo:
    """Snapshot of host capabilities used by availability predicates."""

    system: PlatformType = "unknown"
    has_gpu: bool = False
    memory_gb: Optional[float] = None
    has_command_channel: bool = False


def detect_runtime(*, has_command_channel: bool = False) -> RuntimeInfo:
    """Probe the current host."""
    return RuntimeInfo(
        system=Platform.get_system(),
        has_gpu=has_gpu_acceleration(),
        memory_gb=physical_memory_gb(),
        has_command_channel=has_command_channel,
    )
