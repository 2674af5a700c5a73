"""
License validity gate.

The license is a plain text file that must mention every required keyword and
the current year. Loading, saving and opening a task graph are refused while
the gate reports the license as invalid. ``LicenseMonitor`` re-checks the file
in the background and only signals; it never touches task data.
"""
import asyncio
import contextlib
from datetime import date
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from stagegraph.logs import get_logger

log = get_logger("license")

REQUIRED_KEYWORDS = ('Copyright', 'All rights reserved', 'trade secret')

class LicenseGate:
    """Checks the license file; ``valid`` holds the result of the last check."""

    def __init__(self, license_path: Union[Path, str], required_keywords: Sequence[str] = REQUIRED_KEYWORDS):
        self.license_path = Path(license_path)
        self.required_keywords = tuple(required_keywords)
        self.valid = False

    def check_valid(self) -> bool:
        if not self.license_path.exists():
            log.warning(f"License file not found: {self.license_path}")
            self.valid = False
            return False
        try:
            content = self.license_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"License check error: {e}")
            self.valid = False
            return False

        missing = [k for k in self.required_keywords if k not in content]
        has_current_year = str(date.today().year) in content
        if missing:
            log.warning(f"License is missing required text: {', '.join(missing)}")
        if not has_current_year:
            log.warning("License does not mention the current year")
        self.valid = not missing and has_current_year
        return self.valid

class LicenseMonitor:
    """
    Periodically re-validates the license on the running event loop.

    ``on_invalid`` is called once each time the license goes from valid to
    invalid.
    """

    def __init__(self, gate: LicenseGate, on_invalid: Callable[[], None], interval: float = 30.0):
        if interval <= 0:
            raise ValueError("Monitoring interval must be positive")
        self.gate = gate
        self.on_invalid = on_invalid
        self.interval = interval
        self._last_valid = gate.valid
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start monitoring; must be called from a running event loop."""
        if self.running:
            return
        self._last_valid = self.gate.valid
        self._task = asyncio.get_running_loop().create_task(self._run())
        log.debug(f"License monitoring started, every {self.interval}s")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.debug("License monitoring stopped")

    def check_once(self) -> bool:
        valid = self.gate.check_valid()
        if self._last_valid and not valid:
            log.error("License became invalid")
            self.on_invalid()
        self._last_valid = valid
        return valid

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            self.check_once()
