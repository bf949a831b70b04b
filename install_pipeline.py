"""
Install Pipeline
Downloads release archives from the CurseForge CDN, extracts them into an
AddOns folder and removes installed addons
"""

import asyncio
import logging
import os
import shutil
import stat
import tempfile
import zipfile
from pathlib import Path

from config_store import ConfigSaveError

logger = logging.getLogger(__name__)

CDN_MIRRORS = [
    'https://edge.forgecdn.net/files',
    'https://mediafilez.forgecdn.net/files',
]
# The CDN shards files as /<first 4 digits>/<rest>/ for most ids
CANONICAL_SPLIT = 4


class DownloadError(Exception):
    """Raised once per install when the archive cannot be fetched or extracted"""


def generate_alternative_splits(release_id):
    """Every (first, second) split of a numeric id except the canonical one.

    Args:
        release_id: int/str - Numeric release id

    Returns:
        list - (int, int) tuples for split positions 1..len-1, skipping 4
    """
    id_str = str(release_id)
    splits = []
    for position in range(1, len(id_str)):
        if position == CANONICAL_SPLIT:
            continue
        first, second = id_str[:position], id_str[position:]
        if first.isdigit() and second.isdigit():
            splits.append((int(first), int(second)))
    return splits


def candidate_urls(release_id, file_name, mirrors=CDN_MIRRORS):
    """Yield download URLs in probe order: per mirror, canonical split then the rest."""
    id_str = str(release_id)
    for mirror in mirrors:
        if len(id_str) > CANONICAL_SPLIT and id_str.isdigit():
            first, second = int(id_str[:CANONICAL_SPLIT]), int(id_str[CANONICAL_SPLIT:])
            yield f"{mirror}/{first}/{second}/{file_name}"
        for first, second in generate_alternative_splits(id_str):
            yield f"{mirror}/{first}/{second}/{file_name}"


def read_folder_manifest(zip_path):
    """Top-level folder names written by an archive, in first-seen order."""
    folders = []
    with zipfile.ZipFile(zip_path, 'r') as archive:
        for name in archive.namelist():
            if '/' not in name:
                continue
            top = name.split('/')[0]
            if top and top not in folders:
                folders.append(top)
    return folders


def extract_archive(zip_path, dest_path):
    """Extract every entry into dest_path, overwriting existing files.

    Returns:
        list - Folder manifest of the archive
    """
    dest = Path(dest_path).resolve()
    folders = read_folder_manifest(zip_path)
    with zipfile.ZipFile(zip_path, 'r') as archive:
        for member in archive.namelist():
            target = (dest / member).resolve()
            if target != dest and dest not in target.parents:
                raise DownloadError(f"Archive entry escapes the AddOns folder: {member}")
        archive.extractall(dest)
    return folders


def _handle_remove_readonly(func, path, exc):
    try:
        os.chmod(path, stat.S_IWRITE)
        func(path)
    except OSError:
        pass


def remove_directory_safe(path):
    """Remove a directory tree, clearing read-only flags if the first attempt fails."""
    path = Path(path)
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError:
        shutil.rmtree(path, onerror=_handle_remove_readonly)


def _remove_temp(temp_path):
    if temp_path is None:
        return
    try:
        if temp_path.exists():
            temp_path.unlink()
    except OSError:
        pass


class InstallPipeline:
    def __init__(self, catalog_client, http_client, config_store, mirrors=None):
        """Initialize install pipeline.

        Args:
            catalog_client: CatalogClient - Release metadata source
            http_client: HttpClient - Streams archives to disk
            config_store: ConfigStore - Persists uninstalls
            mirrors: Optional list - CDN roots to probe, in order
        """
        self.catalog = catalog_client
        self.http = http_client
        self.config_store = config_store
        self.mirrors = list(mirrors) if mirrors else list(CDN_MIRRORS)

    async def _try_download(self, url, temp_path):
        try:
            logger.debug(f"Trying download URL: {url}")
            return await self.http.fetch_to_file(url, temp_path)
        except Exception as e:
            logger.debug(f"Failed to download from {url}: {e}")
            return False

    async def download_with_fallbacks(self, release_id, file_name, temp_path):
        """Probe candidate CDN URLs until one returns the archive.

        Returns:
            str - The URL that worked, or None if every candidate failed
        """
        for url in candidate_urls(release_id, file_name, self.mirrors):
            if await self._try_download(url, temp_path):
                logger.info(f"Downloaded {file_name} from {url}")
                return url
        return None

    async def download(self, catalog_id, release_id, dest_path):
        """Download a release archive and extract it into dest_path.

        Args:
            catalog_id: int - Addon id in the catalog
            release_id: int - Release (file) id
            dest_path: str/Path - AddOns directory

        Returns:
            tuple - (file_name, True, folders) where folders is the archive's
            top-level folder manifest

        Raises:
            DownloadError - If any step fails; nothing is reported as installed
        """
        temp_path = None
        try:
            release = await self.catalog.get_release(catalog_id, release_id)
            file_name = release.file_name

            fd, temp_name = tempfile.mkstemp(prefix='wau_', suffix=f"_{Path(file_name).name}")
            os.close(fd)
            temp_path = Path(temp_name)

            if not await self.download_with_fallbacks(release_id, file_name, temp_path):
                raise DownloadError('Failed to download file from all possible URLs')

            folders = await asyncio.to_thread(extract_archive, temp_path, dest_path)
            return file_name, True, folders
        except DownloadError:
            raise
        except Exception as e:
            raise DownloadError(f"Failed to download and install addon: {e}") from e
        finally:
            _remove_temp(temp_path)

    async def download_skin_addon(self, dest_path):
        """Download the skin addon's single universal release and extract it.

        Returns:
            tuple - (version, last_update, folders)

        Raises:
            DownloadError - If the info endpoint has no URL or any step fails
        """
        temp_path = None
        try:
            info = await self.catalog.get_skin_addon_info()
            if not info.download_url:
                raise DownloadError('Could not get download URL from skin addon info')

            fd, temp_name = tempfile.mkstemp(prefix='wau_', suffix=f"_elvui-{info.version}.zip")
            os.close(fd)
            temp_path = Path(temp_name)

            if not await self.http.fetch_to_file(info.download_url, temp_path):
                raise DownloadError(f"Skin addon download was refused: {info.download_url}")

            folders = await asyncio.to_thread(extract_archive, temp_path, dest_path)
            return info.version, info.last_update, folders
        except DownloadError:
            raise
        except Exception as e:
            raise DownloadError(f"Failed to download and install skin addon: {e}") from e
        finally:
            _remove_temp(temp_path)

    async def delete(self, installation, addon_name, folders=None):
        """Remove an addon's folders and drop it from the installation.

        Missing folders are skipped.

        Args:
            installation: Installation - Owner of the addon
            addon_name: str - Addon key in installation.addons
            folders: Optional list - Folders to remove (defaults to the folder mapping)

        Returns:
            bool - True if files and config entries were removed
        """
        if folders is None:
            folders = installation.folder_mapping.get(addon_name, [])

        try:
            for folder in folders:
                folder_path = Path(installation.addon_path) / folder
                if folder_path.is_dir():
                    await asyncio.to_thread(remove_directory_safe, folder_path)

            installation.addons.pop(addon_name, None)
            installation.folder_mapping.pop(addon_name, None)
            self.config_store.save()
            logger.info(f"Deleted {addon_name} from {installation.name}")
            return True
        except (OSError, ConfigSaveError) as e:
            logger.error(f"Error deleting {addon_name} from {installation.name}: {e}")
            return False
