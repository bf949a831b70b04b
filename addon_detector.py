"""
Addon Detector
Infers which catalog addons are installed from the folder names in an
AddOns directory, and installs or registers what it finds
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from catalog_client import select_compatible_release
from config_store import ConfigSaveError
from models import (
    AddonState,
    CatalogEntry,
    DETECTED_PLACEHOLDER_DATE,
    DETECTED_VERSION,
    DetectedAddon,
    SKIN_ADDON_FOLDERS,
    parse_timestamp,
)
from reconcile_engine import clean_version_string

logger = logging.getLogger(__name__)

ADDON_DATABASE_FILE_NAME = 'addon_database.json'
SKIN_CORE_FOLDER = SKIN_ADDON_FOLDERS[0]
BULK_INSTALL_DELAY = 0.5


@dataclass
class BulkInstallReport:
    total: int = 0
    succeeded: int = 0
    failed: list = field(default_factory=list)


def list_installed_folders(addon_path):
    """Immediate subdirectory names of an AddOns path; empty if unreadable."""
    try:
        root = Path(addon_path)
        if not root.is_dir():
            return []
        return sorted(d.name for d in root.iterdir() if d.is_dir())
    except OSError as e:
        logger.warning(f"Error scanning addon folders in '{addon_path}': {e}")
        return []


def detect_from_folders(catalog, installed_folders, game_version_key):
    """Match folder names against catalog entries for one game version.

    For each folder, the catalog entry whose version record lists the folder
    and has the latest parseable upload date wins. Matches are grouped by
    catalog id.

    Args:
        catalog: list[CatalogEntry] - Bundled catalog
        installed_folders: list - Folder names to match
        game_version_key: str - Version record key (the game version id)

    Returns:
        dict - catalog id -> DetectedAddon
    """
    detected = {}

    for folder in installed_folders:
        best_match = None
        latest_upload = None

        for entry in catalog:
            version_info = entry.versions.get(game_version_key)
            if version_info is None or folder not in version_info.folders:
                continue

            upload_date = parse_timestamp(version_info.upload_date)
            if upload_date is None:
                continue
            if latest_upload is None or upload_date > latest_upload:
                latest_upload = upload_date
                best_match = entry

        if best_match is None:
            continue

        if best_match.id not in detected:
            detected[best_match.id] = DetectedAddon(
                id=best_match.id,
                name=best_match.name,
                folders=[],
                upload_date=latest_upload,
            )
        record = detected[best_match.id]
        if folder not in record.folders:
            record.folders.append(folder)
        if record.upload_date is None or latest_upload > record.upload_date:
            record.upload_date = latest_upload

    return detected


class AddonDetector:
    def __init__(self, config_store, catalog_client, install_pipeline, database_path=ADDON_DATABASE_FILE_NAME,
                 delay=BULK_INSTALL_DELAY):
        """Initialize addon detector.

        Args:
            config_store: ConfigStore - Persists detection results
            catalog_client: CatalogClient - Release lookups for bulk installs
            install_pipeline: InstallPipeline - Downloads detected addons
            database_path: str/Path - Bundled addon catalog file
            delay: float - Seconds to wait between addons in a bulk install
        """
        self.config_store = config_store
        self.catalog = catalog_client
        self.pipeline = install_pipeline
        self.database_path = Path(database_path)
        self.delay = delay
        self.skin_detected = False
        self._database = None

    def load_addon_database(self):
        """Load and cache the bundled catalog.

        Returns:
            list[CatalogEntry] or None if the file is missing or invalid
        """
        if self._database is not None:
            return self._database

        if not self.database_path.is_file():
            logger.warning(f"Addon database not found at: {self.database_path}")
            return None

        try:
            with open(self.database_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            entries = []
            for item in raw.get('addons', []):
                try:
                    entries.append(CatalogEntry.from_dict(item))
                except (KeyError, TypeError, ValueError) as e:
                    logger.debug(f"Skipping malformed catalog entry {item!r}: {e}")
            self._database = entries
            logger.info(f"Loaded {len(entries)} entries from {self.database_path}")
            return self._database
        except (OSError, ValueError, AttributeError) as e:
            logger.error(f"Error loading addon database: {e}")
            return None

    async def detect(self, addon_path, game_version_id, include_skin=False):
        """Detect installed catalog addons in an AddOns directory.

        The skin addon is never part of the result; when include_skin is set,
        whether its core folder exists is left in self.skin_detected.

        Returns:
            dict - catalog id -> DetectedAddon (empty on any failure)
        """
        self.skin_detected = False

        installed_folders = await asyncio.to_thread(list_installed_folders, addon_path)
        if not installed_folders:
            return {}

        if include_skin:
            self.skin_detected = SKIN_CORE_FOLDER in installed_folders

        database = await asyncio.to_thread(self.load_addon_database)
        if database is None:
            return {}

        folders_to_search = [f for f in installed_folders if f not in SKIN_ADDON_FOLDERS]
        detected = detect_from_folders(database, folders_to_search, str(game_version_id))
        logger.info(f"Detected {len(detected)} addons in '{addon_path}'")
        return detected

    def add_detected_to_installation(self, detected, installation):
        """Register detected addons that the installation does not track yet.

        Already tracked addons get a folder mapping if they have none, and
        missing online state is reset without touching a real local version.

        Returns:
            int - Number of newly added addons
        """
        added = 0

        for addon in detected.values():
            if addon.name not in installation.addons:
                installation.addons[addon.name] = AddonState(
                    id=addon.id,
                    modified_date=DETECTED_PLACEHOLDER_DATE,
                    online_modified_date='',
                    update_available=False,
                    last_checked='',
                    online_version='',
                    local_version=DETECTED_VERSION,
                )
                installation.folder_mapping[addon.name] = list(addon.folders)
                added += 1
                continue

            if addon.name not in installation.folder_mapping:
                installation.folder_mapping[addon.name] = list(addon.folders)

            existing = installation.addons[addon.name]
            if not existing.online_modified_date:
                existing.online_modified_date = ''
                existing.update_available = False
                existing.last_checked = ''
                existing.online_version = ''
                if not existing.local_version or existing.local_version == DETECTED_VERSION:
                    existing.local_version = DETECTED_VERSION

        try:
            self.config_store.save()
        except ConfigSaveError as e:
            logger.error(f"Detected addons for {installation.name} not persisted: {e}")

        return added

    async def _install_one(self, addon, installation):
        releases = await self.catalog.get_releases(addon.id)
        release = select_compatible_release(releases, installation.game_version_id)
        if release is None:
            return 'no compatible version'

        online_version = clean_version_string(release.display_name or 'Unknown')
        online_modified = release.date_modified

        _, success, folders = await self.pipeline.download(addon.id, release.id, installation.addon_path)
        if not success:
            return 'download failed'

        state = installation.addons.get(addon.name)
        if state is None:
            state = AddonState(id=addon.id)
            installation.addons[addon.name] = state
        state.modified_date = online_modified
        state.local_version = online_version
        state.online_version = online_version
        installation.folder_mapping[addon.name] = folders
        return None

    async def install_all_detected(self, detected, installation, progress=None):
        """Download and install every detected addon, one at a time.

        A failure for one addon is recorded and the batch continues. The
        config is saved once at the end.

        Args:
            detected: dict - Result of detect()
            installation: Installation - Target installation
            progress: Optional callable(current, total, name)

        Returns:
            BulkInstallReport - Totals and labelled failures
        """
        report = BulkInstallReport(total=len(detected))
        if not detected:
            return report

        for index, addon in enumerate(detected.values(), start=1):
            if progress:
                progress(index, report.total, addon.name)
            try:
                failure = await self._install_one(addon, installation)
            except Exception as e:
                logger.error(f"Error installing {addon.name} to {installation.name}: {e}")
                failure = str(e)

            if failure:
                report.failed.append(f"{addon.name} ({failure})")
            else:
                report.succeeded += 1
                logger.info(f"Installed {addon.name} to {installation.name}")

            await asyncio.sleep(self.delay)

        try:
            self.config_store.save()
        except ConfigSaveError as e:
            logger.error(f"Bulk install results for {installation.name} not persisted: {e}")

        if report.failed:
            logger.warning(
                f"Installation into {installation.name} finished with issues: "
                f"{report.succeeded}/{report.total} succeeded; failed: {', '.join(report.failed)}"
            )
        return report
