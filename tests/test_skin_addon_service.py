"""
Tests for installing, removing and registering the skin addon.
"""

import asyncio

from conftest import FakeCatalog, FakeHttp, build_zip, write_toc
from install_pipeline import InstallPipeline
from models import AddonState, SkinAddonInfo
from skin_addon_service import SkinAddonService

SKIN_URL = 'https://tukui.example/elvui-13.70.zip'
SKIN_ARCHIVE = build_zip({
    'ElvUI/ElvUI.toc': '## Version: 13.70\n',
    'ElvUI_Libraries/ElvUI_Libraries.toc': '',
    'ElvUI_Options/ElvUI_Options.toc': '',
})


def make_service(store, files=None, download_url=SKIN_URL):
    catalog = FakeCatalog(skin_info=SkinAddonInfo(version='13.70', last_update='2024-06-01 10:00:00',
                                                  download_url=download_url))
    pipeline = InstallPipeline(catalog, FakeHttp(files=files or {}), store)
    return SkinAddonService(store, pipeline)


class TestInstall:
    def test_install_records_addon_and_flag(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        service = make_service(store, files={SKIN_URL: SKIN_ARCHIVE})

        assert asyncio.run(service.install(installation)) is True

        assert installation.include_elvui is True
        assert installation.folder_mapping['ElvUI'] == ['ElvUI', 'ElvUI_Libraries', 'ElvUI_Options']
        state = installation.addons['ElvUI']
        assert (state.id, state.local_version, state.modified_date) == (0, '13.70', '2024-06-01 10:00:00')
        assert (addon_dir / 'ElvUI' / 'ElvUI.toc').exists()

    def test_failed_download_changes_nothing(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        service = make_service(store)

        assert asyncio.run(service.install(installation)) is False
        assert installation.include_elvui is False
        assert 'ElvUI' not in installation.addons


class TestUninstall:
    def test_removes_default_folders_when_unmapped(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        installation.include_elvui = True
        installation.addons['ElvUI'] = AddonState(id=0, local_version='13.70')
        for folder in ('ElvUI', 'ElvUI_Options', 'Bagnon'):
            (addon_dir / folder).mkdir()

        assert asyncio.run(make_service(store).uninstall(installation)) is True

        assert [p.name for p in addon_dir.iterdir()] == ['Bagnon']
        assert installation.include_elvui is False
        assert 'ElvUI' not in installation.addons


class TestInitializeInConfig:
    def test_creates_record_from_disk_tag(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        write_toc(addon_dir / 'ElvUI', version='v13.65')

        make_service(store).initialize_in_config(installation)

        assert installation.addons['ElvUI'].local_version == '13.65'
        assert installation.folder_mapping['ElvUI'] == ['ElvUI', 'ElvUI_Libraries', 'ElvUI_Options']

    def test_unknown_when_no_tag(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        make_service(store).initialize_in_config(installation)
        assert installation.addons['ElvUI'].local_version == 'Unknown'

    def test_detected_placeholder_is_refreshed(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        installation.addons['ElvUI'] = AddonState(id=0, local_version='Detected')
        write_toc(addon_dir / 'ElvUI', version='13.65')

        make_service(store).initialize_in_config(installation)

        assert installation.addons['ElvUI'].local_version == '13.65'

    def test_real_version_is_kept(self, store, registry, addon_dir):
        installation = registry.add('Retail', addon_dir, 517)
        installation.addons['ElvUI'] = AddonState(id=0, local_version='13.10')
        write_toc(addon_dir / 'ElvUI', version='13.65')

        make_service(store).initialize_in_config(installation)

        assert installation.addons['ElvUI'].local_version == '13.10'
