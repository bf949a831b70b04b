"""
Shared fixtures and in-memory fakes for the catalog and HTTP layers.
"""

import io
import json
import zipfile

import pytest

from config_store import ConfigStore
from installation_registry import InstallationRegistry
from models import Release, SkinAddonInfo


def build_zip(entries):
    """Return zip bytes for a {name: content} mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def write_toc(folder, version=None, title=None, notes=None):
    folder.mkdir(parents=True, exist_ok=True)
    lines = []
    if title:
        lines.append(f"## Title: {title}")
    if notes:
        lines.append(f"## Notes: {notes}")
    if version:
        lines.append(f"## Version: {version}")
    lines.append('core.lua')
    (folder / f"{folder.name}.toc").write_text('\n'.join(lines) + '\n', encoding='utf-8')


class FakeHttp:
    """Stands in for HttpClient: URL -> text responses and URL -> archive bytes."""

    def __init__(self, texts=None, files=None):
        self.texts = dict(texts or {})
        self.files = dict(files or {})
        self.text_calls = []
        self.file_calls = []
        self.closed = False

    async def fetch_text(self, url, params=None):
        self.text_calls.append((url, params))
        if url not in self.texts:
            raise ConnectionError(f"no route to {url}")
        return self.texts[url]

    async def fetch_to_file(self, url, dest):
        self.file_calls.append(url)
        if url not in self.files:
            return False
        with open(dest, 'wb') as f:
            f.write(self.files[url])
        return True

    def close(self):
        self.closed = True


class FakeCatalog:
    """Stands in for CatalogClient with canned releases per catalog id."""

    def __init__(self, releases=None, file_names=None, skin_info=None, failing=None):
        self.releases = dict(releases or {})
        self.file_names = dict(file_names or {})
        self.skin_info = skin_info or SkinAddonInfo(version='13.70', last_update='2024-06-01', download_url='')
        self.failing = set(failing or [])
        self.release_calls = []

    async def get_releases(self, catalog_id):
        self.release_calls.append(catalog_id)
        if catalog_id in self.failing:
            raise ConnectionError(f"catalog unavailable for {catalog_id}")
        return list(self.releases.get(catalog_id, []))

    async def get_release(self, catalog_id, release_id):
        if catalog_id in self.failing:
            raise ConnectionError(f"catalog unavailable for {catalog_id}")
        for release in self.releases.get(catalog_id, []):
            if release.id == release_id:
                return release
        return Release(id=release_id, file_name=self.file_names.get(release_id, f"addon_{release_id}.zip"))

    async def get_skin_addon_info(self):
        return self.skin_info

    async def search_addons(self, query, game_version_id):
        return []


def make_release(release_id, display_name, date_modified, game_version_ids=(517,), file_name=None):
    return Release(
        id=release_id,
        display_name=display_name,
        file_name=file_name or f"{display_name}.zip",
        date_modified=date_modified,
        game_version_ids=list(game_version_ids),
    )


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / 'config.json'


@pytest.fixture
def store(config_path):
    config_store = ConfigStore(config_path)
    config_store.load()
    return config_store


@pytest.fixture
def registry(store):
    return InstallationRegistry(store)


@pytest.fixture
def addon_dir(tmp_path):
    path = tmp_path / 'Interface' / 'AddOns'
    path.mkdir(parents=True)
    return path


def write_config(path, data):
    path.write_text(json.dumps(data), encoding='utf-8')
