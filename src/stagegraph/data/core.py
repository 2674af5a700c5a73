"""
DataCore - central configuration and factory for stagegraph's collaborators.

Locations and intervals come from environment variables so the same build can
point at different data files without code changes:

    STAGEGRAPH_DATA_FILE         task data file (.json, .yml or .yaml)
    STAGEGRAPH_LICENSE_FILE      license file consulted by the validity gate
    STAGEGRAPH_LICENSE_INTERVAL  seconds between background license checks
"""
import os
from pathlib import Path
from typing import Optional, Union

from stagegraph.license import LicenseGate
from stagegraph.logs import get_logger
from .store import TaskStore

log = get_logger("data")

def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name, '')
    return Path(value) if value else default

def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, '')
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        log.warning(f"Ignoring {name}={value!r}, expected a number of seconds")
        return default

class DataCore:
    DEFAULT_DATA_FILE = Path("tasks.json")
    DEFAULT_LICENSE_FILE = Path("LICENSE")
    DEFAULT_LICENSE_INTERVAL = 30.0

    @classmethod
    def data_file(cls) -> Path:
        return _env_path('STAGEGRAPH_DATA_FILE', cls.DEFAULT_DATA_FILE)

    @classmethod
    def license_file(cls) -> Path:
        return _env_path('STAGEGRAPH_LICENSE_FILE', cls.DEFAULT_LICENSE_FILE)

    @classmethod
    def license_interval(cls) -> float:
        return _env_float('STAGEGRAPH_LICENSE_INTERVAL', cls.DEFAULT_LICENSE_INTERVAL)

    @classmethod
    def get_store(cls, file_path: Optional[Union[Path, str]] = None) -> TaskStore:
        """
        Get a TaskStore for the configured data file.

        Args:
            file_path: Explicit data file, overriding STAGEGRAPH_DATA_FILE
        """
        path = Path(file_path) if file_path else cls.data_file()
        log.debug(f"Using data file {path}")
        return TaskStore(path)

    @classmethod
    def get_license_gate(cls, license_path: Optional[Union[Path, str]] = None) -> LicenseGate:
        """Get a LicenseGate for the configured license file."""
        path = Path(license_path) if license_path else cls.license_file()
        return LicenseGate(path)
