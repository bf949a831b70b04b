"""
Catalog Client
Typed access to the CurseForge site API and the Tukui skin addon endpoint
"""

import json
import logging

from models import AddonSummary, Release, SkinAddonInfo

logger = logging.getLogger(__name__)

CURSEFORGE_API = 'https://www.curseforge.com/api/v1'
SKIN_ADDON_INFO_URL = 'https://api.tukui.org/v1/addon/elvui'
WOW_GAME_ID = 1
ADDON_CLASS_ID = 1
SEARCH_PAGE_SIZE = 50
RELEASES_PAGE_SIZE = 20


class CatalogError(Exception):
    """Raised when a catalog response cannot be decoded"""


def _parse_json(text, what):
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Invalid JSON in {what}: {e}") from e


def _decode_release(data):
    """Build a Release from one CurseForge file object."""
    if not isinstance(data, dict) or data.get('id') is None:
        raise CatalogError(f"Release entry without id: {data!r}")
    try:
        release_id = int(data['id'])
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Release id is not numeric: {data.get('id')!r}") from e

    game_version_ids = []
    for value in data.get('gameVersionTypeIds') or []:
        try:
            game_version_ids.append(int(value))
        except (TypeError, ValueError):
            continue

    return Release(
        id=release_id,
        display_name=str(data.get('displayName') or ''),
        file_name=str(data.get('fileName') or ''),
        date_modified=str(data.get('dateModified') or ''),
        game_version_ids=game_version_ids,
    )


def _decode_summary(data):
    author = data.get('author')
    if isinstance(author, dict):
        authors = [author.get('name') or author.get('username') or '']
    else:
        authors = [a.get('name', '') for a in data.get('authors') or [] if isinstance(a, dict)]
    return AddonSummary(
        id=int(data['id']),
        name=str(data.get('name') or 'Unknown Name'),
        summary=str(data.get('summary') or 'No description available'),
        authors=[a for a in authors if a],
        download_count=int(data.get('downloads') or data.get('downloadCount') or 0),
    )


def select_compatible_release(releases, game_version_id):
    """Return the first release tagged with game_version_id.

    The catalog lists releases newest first, so the first match is the
    most recent compatible one.
    """
    for release in releases:
        if release.is_compatible(game_version_id):
            return release
    return None


class CatalogClient:
    def __init__(self, http_client, base_url=CURSEFORGE_API, skin_info_url=SKIN_ADDON_INFO_URL):
        """Initialize catalog client.

        Args:
            http_client: HttpClient - Shared HTTP capability
            base_url: str - CurseForge API root
            skin_info_url: str - Tukui info endpoint for the skin addon
        """
        self.http = http_client
        self.base_url = base_url.rstrip('/')
        self.skin_info_url = skin_info_url

    async def search_addons(self, query, game_version_id):
        """Search WoW addons for a game flavor.

        Returns:
            list[AddonSummary] - Empty if the response has no data
        """
        params = {
            'gameId': str(WOW_GAME_ID),
            'index': '0',
            'classId': str(ADDON_CLASS_ID),
            'filterText': query,
            'pageSize': str(SEARCH_PAGE_SIZE),
            'sortField': '1',
            'gameFlavors[0]': str(game_version_id),
        }
        text = await self.http.fetch_text(f"{self.base_url}/mods/search", params=params)
        payload = _parse_json(text, 'search response')
        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, list):
            return []

        results = []
        for item in data:
            try:
                results.append(_decode_summary(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed search result {item!r}: {e}")
        return results

    async def get_releases(self, catalog_id):
        """Fetch the release list for an addon, in the catalog's order.

        Raises:
            CatalogError - If the response is not a release list
        """
        url = f"{self.base_url}/mods/{catalog_id}/files"
        text = await self.http.fetch_text(url, params={'pageSize': str(RELEASES_PAGE_SIZE), 'index': '0'})
        payload = _parse_json(text, f"release list for {catalog_id}")
        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise CatalogError(f"Release list for addon {catalog_id} has no data array")
        return [_decode_release(item) for item in data]

    async def get_release(self, catalog_id, release_id):
        """Fetch metadata for one release, including its archive file name."""
        url = f"{self.base_url}/mods/{catalog_id}/files/{release_id}"
        text = await self.http.fetch_text(url)
        payload = _parse_json(text, f"release {release_id}")
        data = payload.get('data') if isinstance(payload, dict) else None
        release = _decode_release(data)
        if not release.file_name:
            release.file_name = f"addon_{release_id}.zip"
        return release

    async def get_skin_addon_info(self):
        text = await self.http.fetch_text(self.skin_info_url)
        payload = _parse_json(text, 'skin addon info')
        if not isinstance(payload, dict):
            raise CatalogError('Skin addon info is not an object')
        return SkinAddonInfo(
            version=str(payload.get('version') or 'Unknown'),
            last_update=str(payload.get('last_update') or ''),
            download_url=str(payload.get('url') or ''),
        )
