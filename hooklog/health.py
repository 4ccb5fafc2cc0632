"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any
import tempfile
import psutil

from . import SERVICE_NAME, __version__
from .config import Settings
from .logging import get_logger

logger = get_logger()


class HealthChecker:
    """
    Health checker for the hooklog service.

    - Liveness: is the process serving requests?
    - Readiness: can it persist events (data directory, disk, memory)?
    """

    def __init__(self, settings: Settings, service_name: str = SERVICE_NAME, version: str = __version__):
        self.service_name = service_name
        self.version = version
        self.settings = settings

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def liveness(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._now(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Data directory exists (or can be created) and is writable
        - Disk space availability on the data directory's volume
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "data_dir": self._check_data_dir(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        ready = all(check["status"] != "error" for check in checks.values())

        return {
            "status": "ready" if ready else "not_ready",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._now(),
            "checks": checks,
        }

    def _check_data_dir(self) -> Dict[str, Any]:
        data_dir = Path(self.settings.DATA_DIR)
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryFile(dir=data_dir):
                pass
            return {"status": "ok", "path": str(data_dir)}
        except OSError as e:
            logger.warning("data_dir_health_check_failed", path=str(data_dir), error=str(e))
            return {"status": "error", "path": str(data_dir), "error": str(e)}

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space where logs are written.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        target = Path(self.settings.DATA_DIR)
        probe = target if target.exists() else Path(".")
        try:
            disk = psutil.disk_usage(str(probe.resolve()))
        except OSError as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        available_gb = disk.free / (1024**3)
        if available_gb < threshold_gb:
            status = "error"
        elif available_gb < threshold_gb * 2:
            status = "warning"
        else:
            status = "ok"

        return {
            "status": status,
            "available_gb": round(available_gb, 2),
            "total_gb": round(disk.total / (1024**3), 2),
            "used_percent": disk.percent,
        }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
        memory = psutil.virtual_memory()
        available_mb = memory.available / (1024**2)

        if available_mb < threshold_mb:
            status = "error"
        elif available_mb < threshold_mb * 2:
            status = "warning"
        else:
            status = "ok"

        return {
            "status": status,
            "available_mb": round(available_mb, 2),
            "total_mb": round(memory.total / (1024**2), 2),
            "used_percent": memory.percent,
        }
