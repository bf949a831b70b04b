"""
Auto Scan
Periodically scans installations whose addons have not been checked within
the configured interval, optionally updating stale addons afterwards
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from models import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 360
MIN_INTERVAL_MINUTES = 1


@dataclass
class AutoScanResult:
    addons: list = field(default_factory=list)
    updated_count: int = 0
    auto_update_performed: bool = False
    message: str = ''


class AutoScanService:
    def __init__(self, updater):
        """Initialize auto scan.

        Args:
            updater: AddonUpdater - Provides settings, scan, update and reload
        """
        self.updater = updater
        self.is_scanning = False
        self._stop_event = None
        self._loop = None

    @property
    def interval_minutes(self):
        return self.updater.settings.auto_scan_interval_minutes or DEFAULT_INTERVAL_MINUTES

    @property
    def is_running(self):
        return self._stop_event is not None and not self._stop_event.is_set()

    def should_enable(self):
        if not self.updater.settings.auto_scan_enabled:
            return False
        return any(i.is_scan_eligible() for i in self.updater.get_installations())

    def installations_due(self, now=None):
        """Eligible installations with at least one addon not checked since the cutoff.

        An addon with an empty or unparseable last_checked is always due.
        """
        now = now or datetime.now()
        cutoff = now - timedelta(minutes=self.interval_minutes)
        due = []

        for installation in self.updater.get_installations():
            if not installation.is_scan_eligible():
                continue

            needs_scan = False
            for state in installation.addons.values():
                last_checked = parse_timestamp(state.last_checked)
                if last_checked is None or last_checked < cutoff:
                    needs_scan = True
                    break

            if needs_scan:
                logger.info(f"Installation '{installation.name}' is due for scanning")
                due.append(installation)
            else:
                logger.debug(f"Installation '{installation.name}' scan is up to date")

        return due

    async def run_once(self, now=None):
        """Run one auto scan cycle.

        Returns:
            AutoScanResult - Never raises; failures are reported in message
        """
        if self.is_scanning:
            logger.info('Skipping auto scan - already scanning')
            return AutoScanResult(message='Skipped: scan already in progress')

        self.is_scanning = True
        try:
            due = self.installations_due(now)
            if not due:
                logger.info('No installations are due for scanning at this time')
                return AutoScanResult(message='No installations due for scanning')

            logger.info(f"Starting automatic scan, {len(due)} installations due")
            addons = await self.updater.scan_for_updates()

            updated_count = 0
            auto_update_performed = False
            if self.updater.settings.auto_update_after_scan:
                due_ids = {i.id for i in due}
                for addon in addons:
                    if addon.installation_id not in due_ids or not addon.needs_update:
                        continue
                    auto_update_performed = True
                    logger.info(f"Auto updating {addon.name} in {addon.installation_name}")
                    if await self.updater.update_addon(addon):
                        updated_count += 1
                    else:
                        logger.warning(f"Failed to update {addon.name} in {addon.installation_name}")

            if auto_update_performed:
                addons = self.updater.load_addons_from_config()
                message = f"Auto updated {updated_count} addons across {len(due)} installations"
            else:
                pending = sum(1 for a in addons if a.needs_update)
                message = f"Scan completed - {pending} updates available across {len(due)} installations"

            logger.info(message)
            return AutoScanResult(
                addons=addons,
                updated_count=updated_count,
                auto_update_performed=auto_update_performed,
                message=message,
            )
        except Exception as e:
            logger.error(f"Error during auto scan: {e}")
            return AutoScanResult(message=f"Auto scan failed: {e}")
        finally:
            self.is_scanning = False

    async def run_forever(self, on_result=None):
        """Run run_once every interval until stop() is called or auto scan is disabled.

        Args:
            on_result: Optional callable(AutoScanResult)
        """
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        while not self._stop_event.is_set():
            if not self.should_enable():
                logger.info('Auto scan disabled - no eligible installations or turned off')
                break

            minutes = max(MIN_INTERVAL_MINUTES, self.interval_minutes)
            logger.info(f"Next auto scan in {minutes} minutes")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=minutes * 60)
                break
            except asyncio.TimeoutError:
                pass

            result = await self.run_once()
            if on_result:
                on_result(result)

        self._stop_event.set()

    def stop(self):
        """Stop the loop; safe to call from another thread."""
        if self._stop_event is None or self._stop_event.is_set():
            return
        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._stop_event.set)
        else:
            self._stop_event.set()
