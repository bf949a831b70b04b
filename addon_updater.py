"""
Addon Updater
Owns the config document and wires the catalog, detection, scan and
install components together behind one never-raising API
"""

import asyncio
import logging

from addon_detector import ADDON_DATABASE_FILE_NAME, AddonDetector, BULK_INSTALL_DELAY
from catalog_client import CatalogClient, select_compatible_release
from config_store import CONFIG_FILE_NAME, ConfigSaveError, ConfigStore
from http_client import HttpClient
from install_pipeline import InstallPipeline
from installation_registry import InstallationRegistry
from models import Addon, AddonState, SKIN_ADDON_NAME, now_timestamp, parse_timestamp
from reconcile_engine import SCAN_DELAY, ReconcileEngine, clean_version_string, sort_addons
from skin_addon_service import SkinAddonService
from toc_parser import find_addon_folders

logger = logging.getLogger(__name__)

UNKNOWN = 'Unknown'
INSTALLED_FALLBACK = 'Installed'
LATEST_FALLBACK = 'Latest'


class AddonUpdater:
    def __init__(self, config_path=CONFIG_FILE_NAME, database_path=ADDON_DATABASE_FILE_NAME,
                 http_client=None, catalog_client=None, scan_delay=SCAN_DELAY, install_delay=BULK_INSTALL_DELAY):
        """Initialize the updater and load config.json.

        Args:
            config_path: str/Path - Location of config.json
            database_path: str/Path - Bundled addon catalog used for detection
            http_client: Optional HttpClient - Built from settings when omitted
            catalog_client: Optional CatalogClient - Built on http_client when omitted
            scan_delay: float - Pause after each addon during a scan
            install_delay: float - Pause between addons during a bulk install
        """
        self.config_store = ConfigStore(config_path)
        self.config_store.load()

        self.http = http_client or HttpClient.from_settings(self.config_store.settings)
        self.catalog = catalog_client or CatalogClient(self.http)

        self.registry = InstallationRegistry(self.config_store)
        self.pipeline = InstallPipeline(self.catalog, self.http, self.config_store)
        self.reconciler = ReconcileEngine(self.config_store, self.registry, self.catalog, delay=scan_delay)
        self.detector = AddonDetector(
            self.config_store, self.catalog, self.pipeline, database_path=database_path, delay=install_delay
        )
        self.skin = SkinAddonService(self.config_store, self.pipeline)

    @property
    def config(self):
        return self.config_store.document

    @property
    def settings(self):
        return self.config_store.settings

    def load_config(self):
        return self.config_store.load()

    def save_config(self):
        try:
            self.config_store.save()
            return True
        except ConfigSaveError as e:
            logger.error(f"Error saving config: {e}")
            return False

    def _resolve_installation(self, installation_id=None):
        if installation_id:
            return self.registry.get(installation_id)
        return self.registry.get_active()

    # --- Installations ---

    def get_installations(self):
        return self.registry.all()

    def add_installation(self, name, path, game_version_id):
        return self.registry.add(name, path, game_version_id)

    def remove_installation(self, installation_id):
        return self.registry.remove(installation_id)

    def update_installation(self, installation):
        return self.registry.update(installation)

    def set_active_installation(self, installation_id):
        self.registry.set_active(installation_id)

    # --- Catalog ---

    async def search_addons(self, query, installation_id=None):
        """Search the catalog for the game version of an installation.

        Returns:
            list[AddonSummary] - Empty on any failure
        """
        installation = self._resolve_installation(installation_id)
        if installation is None or installation.game_version_id <= 0:
            logger.warning('Search needs an installation with a game version')
            return []
        try:
            return await self.catalog.search_addons(query, installation.game_version_id)
        except Exception as e:
            logger.error(f"Error searching addons for '{query}': {e}")
            return []

    async def get_releases(self, catalog_id):
        try:
            return await self.catalog.get_releases(catalog_id)
        except Exception as e:
            logger.error(f"Error fetching releases for addon {catalog_id}: {e}")
            return []

    # --- Scan ---

    async def scan_for_updates(self, progress=None):
        """Scan every eligible installation for updates.

        Returns:
            list[Addon] - Sorted results (empty if the scan itself failed)
        """
        try:
            return await self.reconciler.scan_for_updates(progress)
        except Exception as e:
            logger.error(f"Error scanning for updates: {e}")
            return []

    @property
    def last_scan_errors(self):
        return list(self.reconciler.last_errors)

    # --- Install / update / delete ---

    async def _update_skin_addon(self, installation):
        version, last_update, folders = await self.pipeline.download_skin_addon(installation.addon_path)
        if not folders:
            folders = await asyncio.to_thread(find_addon_folders, SKIN_ADDON_NAME, installation.addon_path)
        installation.folder_mapping[SKIN_ADDON_NAME] = list(folders)

        state = installation.addons.get(SKIN_ADDON_NAME)
        if state is not None:
            state.modified_date = last_update
            state.online_modified_date = last_update
            state.update_available = False
            state.local_version = version
            state.online_version = version

        self.config_store.save()
        return True

    async def _find_release(self, catalog_id, release_id, game_version_id):
        releases = await self.catalog.get_releases(catalog_id)
        if release_id is None:
            return select_compatible_release(releases, game_version_id)
        for release in releases:
            if release.id == release_id:
                return release
        return None

    async def update_addon(self, addon):
        """Install the latest release of an addon over its current files.

        Rows from a scan carry the release to install in file_id; rows loaded
        from config do not, so the first compatible release is used.

        Returns:
            bool - True if the addon was downloaded and its record refreshed
        """
        installation = self.registry.get(addon.installation_id)
        if installation is None:
            return False

        try:
            if addon.name == SKIN_ADDON_NAME:
                return await self._update_skin_addon(installation)

            if not addon.id:
                return False

            release = await self._find_release(addon.id, addon.file_id, installation.game_version_id)
            if release is not None:
                release_id = release.id
                online_version = clean_version_string(release.display_name) or addon.online_version
                online_modified = release.date_modified or None
            elif addon.file_id:
                # Not on the listed page; install it anyway and keep the stored metadata
                logger.info(f"Release {addon.file_id} of {addon.name} not listed, downloading without metadata")
                release_id = addon.file_id
                online_version = addon.online_version
                online_modified = None
            else:
                logger.warning(f"No release to install for {addon.name} in {installation.name}")
                return False

            _, success, folders = await self.pipeline.download(addon.id, release_id, installation.addon_path)
            if not success:
                return False

            installation.folder_mapping[addon.name] = folders
            state = installation.addons.get(addon.name)
            if state is not None and online_modified is not None:
                state.modified_date = online_modified
                state.online_modified_date = online_modified
                state.update_available = False
                state.local_version = online_version
                state.online_version = online_version

            self.config_store.save()
            logger.info(f"Updated {addon.name} in {installation.name} to {online_version}")
            return True
        except Exception as e:
            logger.error(f"Error updating {addon.name} in {installation.name}: {e}")
            return False

    async def install_addon(self, addon_name, catalog_id, release_id, installation_id=None):
        """Install a specific release into an installation (active one by default).

        Returns:
            bool - True if the addon was downloaded and recorded
        """
        installation = self._resolve_installation(installation_id)
        if installation is None:
            return False

        try:
            online_modified = None
            online_version = None
            for release in await self.catalog.get_releases(catalog_id):
                if release.id == release_id:
                    online_modified = release.date_modified or None
                    online_version = clean_version_string(release.display_name) or None
                    break

            _, success, folders = await self.pipeline.download(catalog_id, release_id, installation.addon_path)
            if not success:
                return False

            state = installation.addons.get(addon_name)
            if state is None:
                state = AddonState(id=catalog_id)
                installation.addons[addon_name] = state
            state.id = catalog_id
            state.modified_date = online_modified
            state.online_modified_date = online_modified
            state.update_available = False
            state.last_checked = now_timestamp()
            state.local_version = online_version or INSTALLED_FALLBACK
            state.online_version = online_version or LATEST_FALLBACK

            installation.folder_mapping[addon_name] = folders
            self.config_store.save()
            logger.info(f"Installed {addon_name} to {installation.name}")
            return True
        except Exception as e:
            logger.error(f"Error installing {addon_name} to {installation.name}: {e}")
            return False

    async def delete_addon(self, addon):
        """Remove an addon's mapped folders and its config entries.

        Only folders recorded in the installation's folder mapping are removed;
        the folders shown on the row may come from a TOC lookup and are ignored.

        Returns:
            bool - False if the installation is unknown or removal failed
        """
        installation = self.registry.get(addon.installation_id)
        if installation is None:
            return False
        return await self.pipeline.delete(installation, addon.name)

    # --- Skin addon ---

    async def install_skin_addon(self, installation_id=None):
        installation = self._resolve_installation(installation_id)
        if installation is None:
            logger.warning('No installation to install the skin addon into')
            return False
        return await self.skin.install(installation)

    async def uninstall_skin_addon(self, installation_id=None):
        installation = self._resolve_installation(installation_id)
        if installation is None:
            logger.warning('No installation to remove the skin addon from')
            return False
        return await self.skin.uninstall(installation)

    # --- Config projection ---

    def _row_from_state(self, installation, addon_name, state):
        last_updated = parse_timestamp(state.modified_date)
        if state.modified_date and last_updated is None:
            logger.debug(f"Could not parse date for {addon_name}: {state.modified_date!r}")

        if addon_name == SKIN_ADDON_NAME:
            if last_updated is None and not state.modified_date:
                last_updated = parse_timestamp(state.online_modified_date)
            addon_id = None
        else:
            addon_id = state.id if state.id > 0 else None

        folders = installation.folders_for(addon_name)
        if folders is None:
            folders = find_addon_folders(addon_name, installation.addon_path)

        return Addon(
            name=addon_name,
            local_version=state.local_version if state.local_version is not None else UNKNOWN,
            online_version=state.online_version if state.online_version is not None else UNKNOWN,
            needs_update=state.update_available,
            last_updated=last_updated,
            id=addon_id,
            folders=list(folders),
            installation_id=installation.id,
            installation_name=installation.name,
        )

    def load_addons_from_config(self):
        """Build UI rows from the stored state of every installation, without network access.

        Returns:
            list[Addon] - Sorted per settings (empty on failure)
        """
        try:
            addons = []
            for installation in self.registry.all():
                for addon_name, state in installation.addons.items():
                    if addon_name == SKIN_ADDON_NAME and not installation.include_elvui:
                        continue
                    addons.append(self._row_from_state(installation, addon_name, state))
            return sort_addons(addons, self.settings.addon_sort_mode)
        except Exception as e:
            logger.error(f"Error loading addons from config: {e}")
            return []

    # --- Detection ---

    async def detect_and_add(self, installation_id=None, install=False, progress=None):
        """Detect installed addons in an installation and start tracking them.

        Args:
            installation_id: Optional str - Defaults to the active installation
            install: bool - Also download the current release of every detected addon
            progress: Optional callable(current, total, name) for the bulk install

        Returns:
            dict - {'success', 'detected', 'added', 'skin_detected', 'report'} or
            {'success': False, 'error'}
        """
        installation = self._resolve_installation(installation_id)
        if installation is None or not installation.is_scan_eligible():
            return {'success': False, 'error': 'Installation needs a valid AddOns path and game version'}

        try:
            detected = await self.detector.detect(
                installation.addon_path, installation.game_version_id, include_skin=True
            )
            skin_detected = self.detector.skin_detected

            if skin_detected:
                installation.include_elvui = True
                self.skin.initialize_in_config(installation)

            added = self.detector.add_detected_to_installation(detected, installation)

            report = None
            if install and detected:
                report = await self.detector.install_all_detected(detected, installation, progress)

            self.config_store.save()
            logger.info(
                f"Detection for {installation.name} finished: "
                f"{len(detected)} detected, {added} added"
            )
            return {
                'success': True,
                'detected': len(detected),
                'added': added,
                'skin_detected': skin_detected,
                'report': report,
            }
        except Exception as e:
            logger.error(f"Error detecting addons for {installation.name}: {e}")
            return {'success': False, 'error': str(e)}

    def close(self):
        self.http.close()
