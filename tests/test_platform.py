"""Tests for runtime capability detection."""

import sys

from polyprovider.utils import platform as platform_module
from polyprovider.utils.platform import Platform, RuntimeInfo, detect_runtime


class TestPlatformClass:
    def test_get_system_returns_known_platform(self):
        assert Platform.get_system() in {"windows", "linux", "macos", "unknown"}

    def test_get_system_maps_sys_platform(self, monkeypatch):
        monkeypatch.setattr(sys, "platform", "darwin")
        assert Platform.get_system() == "macos"
        monkeypatch.setattr(sys, "platform", "freebsd13")
        assert Platform.get_system() == "linux"


class TestRuntimeDetection:
    def test_macos_always_has_gpu(self, monkeypatch):
        monkeypatch.setattr(sys, "platform", "darwin")
        assert platform_module.has_gpu_acceleration() is True

    def test_memory_is_positive_or_unknown(self):
        memory = platform_module.physical_memory_gb()
        assert memory is None or memory > 0

    def test_detect_runtime_uses_probes(self, monkeypatch):
        monkeypatch.setattr(platform_module, "has_gpu_acceleration", lambda: False)
        monkeypatch.setattr(platform_module, "physical_memory_gb", lambda: 4.0)

        runtime = detect_runtime(has_command_channel=True)

        assert runtime.has_gpu is False
        assert runtime.memory_gb == 4.0
        assert runtime.has_command_channel is True

    def test_runtime_info_defaults(self):
        assert RuntimeInfo() == RuntimeInfo(system="unknown", has_gpu=False, memory_gb=None)
