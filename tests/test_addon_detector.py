"""
Tests for folder-based addon detection and bulk installs.
"""

import asyncio
import json
from datetime import datetime

import pytest

from addon_detector import AddonDetector, detect_from_folders
from conftest import FakeCatalog, make_release
from install_pipeline import DownloadError
from models import CatalogEntry, DETECTED_PLACEHOLDER_DATE, DETECTED_VERSION, AddonState, DetectedAddon


def catalog_file(path, addons):
    path.write_text(json.dumps({'addons': addons}), encoding='utf-8')
    return path


def entry(addon_id, name, folders, upload_date, version_key='517'):
    return {'id': addon_id, 'name': name, 'versions': {version_key: {'folders': folders, 'upload_date': upload_date}}}


class FakePipeline:
    def __init__(self, failing=None):
        self.failing = set(failing or [])
        self.calls = []

    async def download(self, catalog_id, release_id, dest_path):
        self.calls.append((catalog_id, release_id))
        if catalog_id in self.failing:
            raise DownloadError('Failed to download file from all possible URLs')
        return f"{release_id}.zip", True, [f"Folder{catalog_id}"]


class TestDetectFromFolders:
    def test_single_match(self):
        catalog = [CatalogEntry.from_dict(entry(5, 'MyAddon', ['MyAddon'], '2023-01-01'))]
        detected = detect_from_folders(catalog, ['MyAddon'], '517')
        assert list(detected) == [5]
        assert detected[5].folders == ['MyAddon']
        assert detected[5].name == 'MyAddon'

    def test_later_upload_wins_shared_folder(self):
        catalog = [
            CatalogEntry.from_dict(entry(1, 'Old Fork', ['Shared'], '2022-01-01')),
            CatalogEntry.from_dict(entry(2, 'Maintained', ['Shared'], '2024-01-01')),
            CatalogEntry.from_dict(entry(3, 'Broken Date', ['Shared'], 'not a date')),
        ]
        detected = detect_from_folders(catalog, ['Shared'], '517')
        assert list(detected) == [2]
        assert detected[2].upload_date == datetime(2024, 1, 1)

    def test_folders_grouped_by_catalog_id(self):
        catalog = [CatalogEntry.from_dict(entry(7, 'DBM', ['DBM-Core', 'DBM-GUI'], '2024-05-01'))]
        detected = detect_from_folders(catalog, ['DBM-Core', 'DBM-GUI', 'Unrelated'], '517')
        assert detected[7].folders == ['DBM-Core', 'DBM-GUI']

    def test_other_game_version_ignored(self):
        catalog = [CatalogEntry.from_dict(entry(5, 'MyAddon', ['MyAddon'], '2023-01-01', version_key='67408'))]
        assert detect_from_folders(catalog, ['MyAddon'], '517') == {}

    def test_repeated_runs_are_identical(self):
        catalog = [
            CatalogEntry.from_dict(entry(1, 'A', ['A', 'A_Opt'], '2023-01-01')),
            CatalogEntry.from_dict(entry(2, 'B', ['B'], '2023-02-01')),
        ]
        folders = ['A', 'A_Opt', 'B']
        first = detect_from_folders(catalog, folders, '517')
        second = detect_from_folders(catalog, folders, '517')
        assert {k: v.folders for k, v in first.items()} == {k: v.folders for k, v in second.items()}


@pytest.fixture
def detector(tmp_path, store):
    database = catalog_file(tmp_path / 'addon_database.json', [
        entry(5, 'MyAddon', ['MyAddon'], '2023-01-01'),
        entry(9, 'ElvUI Clone', ['ElvUI'], '2024-01-01'),
    ])
    return AddonDetector(store, FakeCatalog(), FakePipeline(), database_path=database, delay=0)


class TestDetect:
    def test_detects_installed_addon(self, detector, addon_dir):
        (addon_dir / 'MyAddon').mkdir()
        detected = asyncio.run(detector.detect(addon_dir, 517))
        assert list(detected) == [5]
        assert detected[5].folders == ['MyAddon']

    def test_skin_folders_excluded_and_reported(self, detector, addon_dir):
        for folder in ('MyAddon', 'ElvUI', 'ElvUI_Options'):
            (addon_dir / folder).mkdir()

        detected = asyncio.run(detector.detect(addon_dir, 517, include_skin=True))

        assert 9 not in detected
        assert detector.skin_detected is True

    def test_skin_probe_off_by_default(self, detector, addon_dir):
        (addon_dir / 'ElvUI').mkdir()
        asyncio.run(detector.detect(addon_dir, 517))
        assert detector.skin_detected is False

    def test_missing_database_gives_empty_result(self, tmp_path, store, addon_dir):
        (addon_dir / 'MyAddon').mkdir()
        detector = AddonDetector(store, FakeCatalog(), FakePipeline(), database_path=tmp_path / 'none.json')
        assert asyncio.run(detector.detect(addon_dir, 517)) == {}

    def test_missing_addon_path_gives_empty_result(self, detector, tmp_path):
        assert asyncio.run(detector.detect(tmp_path / 'missing', 517)) == {}


class TestAddDetected:
    def test_new_addons_get_placeholder_state(self, detector, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        detected = {5: DetectedAddon(id=5, name='MyAddon', folders=['MyAddon'])}

        added = detector.add_detected_to_installation(detected, installation)

        assert added == 1
        state = installation.addons['MyAddon']
        assert state.id == 5
        assert state.modified_date == DETECTED_PLACEHOLDER_DATE
        assert state.local_version == DETECTED_VERSION
        assert state.update_available is False
        assert installation.folder_mapping['MyAddon'] == ['MyAddon']

    def test_existing_addon_keeps_real_version(self, detector, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        installation.addons['MyAddon'] = AddonState(id=5, local_version='2.0', online_modified_date='')
        detected = {5: DetectedAddon(id=5, name='MyAddon', folders=['MyAddon'])}

        added = detector.add_detected_to_installation(detected, installation)

        assert added == 0
        assert installation.addons['MyAddon'].local_version == '2.0'
        assert installation.folder_mapping['MyAddon'] == ['MyAddon']


class TestInstallAllDetected:
    def test_reports_failures_and_continues(self, store, registry, addon_dir, tmp_path):
        installation = registry.add('Retail', addon_dir, 517)
        catalog = FakeCatalog(releases={
            1: [make_release(101, 'One-1.0.zip', '2024-06-01')],
            2: [make_release(201, 'Two-classic', '2024-06-01', game_version_ids=[67408])],
            3: [make_release(301, 'Three-1.0', '2024-06-01')],
        })
        pipeline = FakePipeline(failing=[3])
        detector = AddonDetector(store, catalog, pipeline, database_path=tmp_path / 'unused.json', delay=0)
        detected = {
            1: DetectedAddon(id=1, name='One', folders=['One']),
            2: DetectedAddon(id=2, name='Two', folders=['Two']),
            3: DetectedAddon(id=3, name='Three', folders=['Three']),
        }
        ticks = []

        report = asyncio.run(detector.install_all_detected(
            detected, installation, lambda current, total, name: ticks.append((current, total, name))
        ))

        assert report.total == 3
        assert report.succeeded == 1
        assert report.failed[0] == 'Two (no compatible version)'
        assert report.failed[1].startswith('Three (')
        assert [t[0] for t in ticks] == [1, 2, 3]
        assert installation.addons['One'].local_version == 'One-1.0'
        assert installation.folder_mapping['One'] == ['Folder1']
        assert 'Three' not in installation.addons

    def test_empty_batch(self, detector, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        report = asyncio.run(detector.install_all_detected({}, installation))
        assert (report.total, report.succeeded, report.failed) == (0, 0, [])
