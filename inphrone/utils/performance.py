"""Process and pool gauges for the health endpoint."""

from __future__ import annotations

import psutil
from prometheus_client import Gauge


db_pool_size = Gauge("inphrone_db_pool_size", "DB connection pool size")
db_pool_available = Gauge("inphrone_db_pool_available", "Idle DB connections")
process_memory = Gauge("inphrone_process_memory_rss_bytes", "Resident memory of the server process")


class PerformanceMonitor:
    def __init__(self) -> None:
        self._process = psutil.Process()

    def record_db_pool(self, size: int, available: int) -> None:
        db_pool_size.set(size)
        db_pool_available.set(available)

    def gather_host_metrics(self) -> dict:
        memory_info = self._process.memory_info()
        process_memory.set(memory_info.rss)
        return {
            "memory_rss": memory_info.rss,
            "cpu_percent": self._process.cpu_percent(interval=None),
        }
