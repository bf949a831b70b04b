"""
Workers
QThread wrappers that run the updater's coroutines off the UI thread and
report back through signals
"""

import asyncio

from PyQt6.QtCore import QThread, pyqtSignal


class ScanWorker(QThread):
    """Worker thread for a full update scan.

    Signals:
        finished(addons, errors) - Sorted Addon rows and per-addon error messages
        progress(current, total, name) - One tick per addon checked
    """
    finished = pyqtSignal(list, list)
    progress = pyqtSignal(int, int, str)

    def __init__(self, updater):
        """Initialize scan worker.

        Args:
            updater: AddonUpdater - Updater instance
        """
        super().__init__()
        self.updater = updater

    def _report(self, current, total, name):
        self.progress.emit(current, total, name)

    def run(self):
        addons = asyncio.run(self.updater.scan_for_updates(self._report))
        self.finished.emit(addons, self.updater.last_scan_errors)


class InstallWorker(QThread):
    finished = pyqtSignal(bool, str)
    progress = pyqtSignal(str)

    def __init__(self, updater, addon_name, catalog_id, release_id, installation_id=None):
        """Initialize install worker.

        Args:
            updater: AddonUpdater - Updater instance
            addon_name: str - Name to track the addon under
            catalog_id: int - Catalog addon id
            release_id: int - Release to install
            installation_id: Optional str - Target installation (active one if omitted)
        """
        super().__init__()
        self.updater = updater
        self.addon_name = addon_name
        self.catalog_id = catalog_id
        self.release_id = release_id
        self.installation_id = installation_id

    def run(self):
        self.progress.emit(f"Installing {self.addon_name}...")
        success = asyncio.run(self.updater.install_addon(
            self.addon_name, self.catalog_id, self.release_id, self.installation_id
        ))
        if success:
            self.finished.emit(True, f"{self.addon_name} installed successfully")
        else:
            self.finished.emit(False, f"Failed to install {self.addon_name}")


class UpdateWorker(QThread):
    """Worker thread for a single addon update"""
    finished = pyqtSignal(bool, str)
    progress = pyqtSignal(str)

    def __init__(self, updater, addon):
        super().__init__()
        self.updater = updater
        self.addon = addon

    def run(self):
        self.progress.emit(f"Updating {self.addon.name}...")
        success = asyncio.run(self.updater.update_addon(self.addon))
        if success:
            self.finished.emit(True, f"{self.addon.name} updated successfully")
        else:
            self.finished.emit(False, f"Failed to update {self.addon.name} in {self.addon.installation_name}")


class BatchUpdateWorker(QThread):
    """Worker thread for updating several addons in sequence"""
    finished = pyqtSignal(int, int)  # updated, failed
    progress = pyqtSignal(str, int, int)
    log = pyqtSignal(str)

    def __init__(self, updater, addons):
        """Initialize batch update worker.

        Args:
            updater: AddonUpdater - Updater instance
            addons: list[Addon] - Rows to update, usually the stale ones from a scan
        """
        super().__init__()
        self.updater = updater
        self.addons = addons
        self._is_cancelled = False

    def cancel(self):
        """Stop after the addon currently being updated."""
        self._is_cancelled = True

    async def _update_all(self):
        updated = 0
        failed = 0
        total = len(self.addons)

        for idx, addon in enumerate(self.addons):
            if self._is_cancelled:
                self.log.emit("Batch update cancelled by user")
                break

            self.progress.emit(f"Updating {addon.name}...", idx, total)
            self.log.emit(f"[{idx + 1}/{total}] Updating {addon.name} in {addon.installation_name}...")

            if await self.updater.update_addon(addon):
                updated += 1
                self.log.emit(f"{addon.name} updated successfully")
            else:
                failed += 1
                self.log.emit(f"{addon.name} failed to update")

        return updated, failed

    def run(self):
        updated, failed = asyncio.run(self._update_all())
        self.finished.emit(updated, failed)


class DetectWorker(QThread):
    """Worker thread for addon detection, optionally followed by a bulk install.

    Signals:
        finished(result) - Result dict from AddonUpdater.detect_and_add
        progress(current, total, name) - Bulk install progress
    """
    finished = pyqtSignal(dict)
    progress = pyqtSignal(int, int, str)

    def __init__(self, updater, installation_id=None, install=True):
        super().__init__()
        self.updater = updater
        self.installation_id = installation_id
        self.install = install

    def _report(self, current, total, name):
        self.progress.emit(current, total, name)

    def run(self):
        result = asyncio.run(self.updater.detect_and_add(
            self.installation_id, install=self.install, progress=self._report
        ))
        self.finished.emit(result)


class AutoScanWorker(QThread):
    """Runs the periodic auto scan loop until stop() is called"""
    completed = pyqtSignal(object)  # AutoScanResult

    def __init__(self, auto_scan_service):
        super().__init__()
        self.service = auto_scan_service

    def run(self):
        asyncio.run(self.service.run_forever(on_result=self.completed.emit))

    def stop(self):
        self.service.stop()
