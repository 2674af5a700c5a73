"""Tests for the license gate and background monitor."""

import asyncio
from datetime import date
from unittest.mock import MagicMock

import pytest

from stagegraph.license import LicenseGate, LicenseMonitor


class TestLicenseGate:
    """Test license file validation."""

    def test_valid_license(self, license_file):
        gate = LicenseGate(license_file)
        assert gate.check_valid()
        assert gate.valid

    def test_missing_file(self, tmp_path):
        gate = LicenseGate(tmp_path / "LICENSE")
        assert not gate.check_valid()
        assert not gate.valid

    def test_missing_keyword(self, tmp_path):
        path = tmp_path / "LICENSE"
        path.write_text(f"Copyright {date.today().year}. All rights reserved.", encoding="utf-8")
        assert not LicenseGate(path).check_valid()

    def test_stale_year(self, tmp_path):
        path = tmp_path / "LICENSE"
        path.write_text("Copyright 1999. All rights reserved. trade secret", encoding="utf-8")
        assert not LicenseGate(path).check_valid()

    def test_unreadable_content(self, tmp_path):
        path = tmp_path / "LICENSE"
        path.write_bytes(b"\xff\xfe\x00binary")
        assert not LicenseGate(path).check_valid()

    def test_custom_keywords(self, tmp_path):
        path = tmp_path / "LICENSE"
        path.write_text(f"Licensed to ACME in {date.today().year}", encoding="utf-8")
        assert LicenseGate(path, required_keywords=["ACME"]).check_valid()

    def test_valid_tracks_latest_check(self, license_file):
        gate = LicenseGate(license_file)
        gate.check_valid()
        license_file.unlink()
        assert not gate.check_valid()
        assert not gate.valid


class TestLicenseMonitor:
    """Test transition signalling."""

    def test_rejects_bad_interval(self, license_file):
        with pytest.raises(ValueError):
            LicenseMonitor(LicenseGate(license_file), MagicMock(), interval=0)

    def test_signals_once_on_transition(self, license_file):
        gate = LicenseGate(license_file)
        gate.check_valid()
        on_invalid = MagicMock()
        monitor = LicenseMonitor(gate, on_invalid)

        assert monitor.check_once()
        on_invalid.assert_not_called()

        license_file.unlink()
        assert not monitor.check_once()
        assert not monitor.check_once()
        on_invalid.assert_called_once()

    def test_signals_again_after_recovery(self, license_file):
        text = license_file.read_text(encoding="utf-8")
        gate = LicenseGate(license_file)
        gate.check_valid()
        on_invalid = MagicMock()
        monitor = LicenseMonitor(gate, on_invalid)

        license_file.unlink()
        monitor.check_once()
        license_file.write_text(text, encoding="utf-8")
        assert monitor.check_once()
        license_file.unlink()
        monitor.check_once()
        assert on_invalid.call_count == 2

    def test_never_valid_does_not_signal(self, tmp_path):
        on_invalid = MagicMock()
        monitor = LicenseMonitor(LicenseGate(tmp_path / "LICENSE"), on_invalid)
        monitor.check_once()
        on_invalid.assert_not_called()

    def test_start_requires_running_loop(self, license_file):
        monitor = LicenseMonitor(LicenseGate(license_file), MagicMock())
        with pytest.raises(RuntimeError):
            monitor.start()

    @pytest.mark.asyncio
    async def test_background_checks(self, license_file):
        gate = LicenseGate(license_file)
        gate.check_valid()
        on_invalid = MagicMock()
        monitor = LicenseMonitor(gate, on_invalid, interval=0.01)

        monitor.start()
        assert monitor.running
        license_file.unlink()
        for _ in range(100):
            if on_invalid.called:
                break
            await asyncio.sleep(0.01)
        await monitor.stop()

        on_invalid.assert_called_once()
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, license_file):
        monitor = LicenseMonitor(LicenseGate(license_file), MagicMock())
        await monitor.stop()
        assert not monitor.running
