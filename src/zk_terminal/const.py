import os
import zoneinfo

import tzlocal

from zk_terminal import __version__

__all__ = [
    "LOCAL_TZ",
    "YES_ANSWER",
    "ZK_DEBUG",
    "ZK_DEVICE_PORT",
    "ZK_ENABLE_METRICS",
    "ZK_HANDSHAKE_TIMEOUT",
    "ZK_LOG_FORMAT",
    "ZK_LOG_HUMAN_OUTPUT",
    "ZK_LOG_JSON_FILE",
    "ZK_LOG_NAME",
    "ZK_METRICS_PORT",
    "ZK_PERF_THRESHOLD_MS",
    "ZK_PERF_TRACKING",
    "ZK_TCP_CHUNK_TIMEOUT",
    "ZK_TIMEOUT",
    "ZK_UDP_CHUNK_TIMEOUT",
    "ZK_UDP_LOCAL_PORT",
    "ZK_VERSION",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
LOCAL_TZ = zoneinfo.ZoneInfo(str(tzlocal.get_localzone()))
ZK_LOG_NAME: str = "zk_terminal"
ZK_VERSION: str = __version__


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except (ValueError, TypeError):
        return default


ZK_DEBUG = os.environ.get("ZK_DEBUG", "0").casefold() in YES_ANSWER

# Device connection
ZK_DEVICE_PORT: int = _env_int("ZK_PORT", 4370)
ZK_UDP_LOCAL_PORT: int = _env_int("ZK_UDP_LOCAL_PORT", 4000)
# seconds
ZK_TIMEOUT: float = _env_float("ZK_TIMEOUT", 10.0)
ZK_HANDSHAKE_TIMEOUT: float = _env_float("ZK_HANDSHAKE_TIMEOUT", 2.0)
ZK_TCP_CHUNK_TIMEOUT: float = _env_float("ZK_TCP_CHUNK_TIMEOUT", 10.0)
ZK_UDP_CHUNK_TIMEOUT: float = _env_float("ZK_UDP_CHUNK_TIMEOUT", 3.0)

# Logging Configuration
ZK_LOG_FORMAT: str = os.environ.get("ZK_LOG_FORMAT", "human")  # "json", "human", or "both"
ZK_LOG_JSON_FILE: str = os.environ.get("ZK_LOG_JSON_FILE", "")  # empty disables the JSON file handler
ZK_LOG_HUMAN_OUTPUT: str = os.environ.get("ZK_LOG_HUMAN_OUTPUT", "stderr")  # "stdout", "stderr", or file path

# Performance Instrumentation
ZK_PERF_TRACKING: bool = os.environ.get("ZK_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("ZK_PERF_THRESHOLD_MS", "500")
ZK_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 500

# Prometheus exporter
ZK_ENABLE_METRICS: bool = os.environ.get("ZK_METRICS_ENABLED", "0").casefold() in YES_ANSWER
ZK_METRICS_PORT: int = _env_int("ZK_METRICS_PORT", 9400)
