import io
import zipfile
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import FakeCatalog, record, write_po

from langpack.errors import CatalogError, LanguageNotFoundError, PackageInstallError
from langpack.providers import (
    HttpCatalogProvider,
    PackageInstaller,
    StaticCatalogProvider,
    UpdateChecker,
    is_newer,
)
from langpack.storage import InstalledLanguages
from langpack.structures import Category, Target, TranslationRecord, UpdateRecord

CATALOG_RESPONSE = {
    "translations": [
        {
            "language": "ja",
            "version": "5.3",
            "updated": "2024-02-01 10:00:00",
            "english_name": "Japanese",
            "native_name": "日本語",
            "package": "https://downloads.example.test/translation/plugin/akismet/5.3/ja.zip",
            "iso": {"1": "ja"},
        }
    ]
}


def make_zip(path, files):
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return path


def test_http_catalog_fetch():
    response = MagicMock()
    response.json.return_value = CATALOG_RESPONSE
    with patch("langpack.providers.requests.get", return_value=response) as get:
        provider = HttpCatalogProvider("https://api.example.test/translations/", timeout=5)
        records = provider.fetch_catalog(Category.PLUGIN, "akismet", version="6.6")

    get.assert_called_once_with(
        "https://api.example.test/translations/plugins/1.0/",
        params={"version": "6.6", "slug": "akismet"},
        timeout=5,
    )
    assert records == [
        TranslationRecord(
            locale="ja",
            english_name="Japanese",
            native_name="日本語",
            updated="2024-02-01 10:00:00",
            version="5.3",
            package=CATALOG_RESPONSE["translations"][0]["package"],
        )
    ]


def test_http_catalog_core_omits_slug():
    response = MagicMock()
    response.json.return_value = {"translations": []}
    with patch("langpack.providers.requests.get", return_value=response) as get:
        HttpCatalogProvider("https://api.example.test").fetch_catalog(
            Category.CORE, None, version="6.6"
        )
    assert get.call_args.kwargs["params"] == {"version": "6.6"}
    assert get.call_args.args[0].endswith("/core/1.0/")


def test_http_catalog_network_error():
    with patch(
        "langpack.providers.requests.get",
        side_effect=requests.ConnectionError("offline"),
    ):
        with pytest.raises(CatalogError):
            HttpCatalogProvider("https://api.example.test").fetch_catalog(
                Category.CORE, version="6.6"
            )


def test_http_catalog_invalid_json():
    response = MagicMock()
    response.json.side_effect = ValueError("no json")
    with patch("langpack.providers.requests.get", return_value=response):
        with pytest.raises(CatalogError):
            HttpCatalogProvider("https://api.example.test").fetch_catalog(
                Category.CORE, version="6.6"
            )


def test_static_catalog_from_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(
        '{"core": [{"language": "nl_NL", "english_name": "Dutch"}],'
        ' "plugin/akismet": [{"language": "ja"}]}',
        encoding="utf-8",
    )
    provider = StaticCatalogProvider.from_file(path)

    assert [r.locale for r in provider.fetch_catalog(Category.CORE, version="6.6")] == ["nl_NL"]
    assert [r.locale for r in provider.fetch_catalog(Category.PLUGIN, "akismet", version="6.6")] == ["ja"]
    assert provider.fetch_catalog(Category.THEME, "twentyten", version="6.6") == []


def test_static_catalog_rejects_missing_language():
    provider = StaticCatalogProvider({"core": [{"english_name": "Dutch"}]})
    with pytest.raises(CatalogError):
        provider.fetch_catalog(Category.CORE, version="6.6")


def test_installer_unpacks_local_package(tmp_path, language_dir):
    package = make_zip(
        tmp_path / "ja.zip",
        {"akismet-ja.po": "po", "akismet-ja.mo": "mo"},
    )
    catalog = FakeCatalog()
    catalog.add(Category.PLUGIN, "akismet", TranslationRecord(
        locale="ja", english_name="Japanese", native_name="Japanese", package=str(package)
    ))
    installer = PackageInstaller(catalog, language_dir, version="6.6")

    assert installer.install(Category.PLUGIN, "akismet", "ja") == "ja"
    assert sorted(p.name for p in (language_dir / "plugins").iterdir()) == [
        "akismet-ja.mo",
        "akismet-ja.po",
    ]


def test_installer_lookup_miss(language_dir):
    installer = PackageInstaller(FakeCatalog(), language_dir, version="6.6")
    with pytest.raises(LanguageNotFoundError):
        installer.install(Category.CORE, None, "nl_NL")


def test_installer_rejects_unsafe_archive(tmp_path, language_dir):
    package = make_zip(tmp_path / "evil.zip", {"../escape.po": "x"})
    catalog = FakeCatalog()
    catalog.add(Category.CORE, None, TranslationRecord(
        locale="nl_NL", english_name="Dutch", native_name="Nederlands", package=str(package)
    ))
    installer = PackageInstaller(catalog, language_dir, version="6.6")

    with pytest.raises(PackageInstallError):
        installer.install(Category.CORE, None, "nl_NL")
    assert not (tmp_path / "escape.po").exists()


def test_installer_download_failure(language_dir):
    catalog = FakeCatalog()
    catalog.add(Category.CORE, None, record("nl_NL"))
    installer = PackageInstaller(catalog, language_dir, version="6.6")
    with patch(
        "langpack.providers.requests.get",
        side_effect=requests.HTTPError("404"),
    ):
        with pytest.raises(PackageInstallError):
            installer.install(Category.CORE, None, "nl_NL")


def test_installer_streams_remote_package(language_dir):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("nl_NL.po", "po")
    response = MagicMock()
    response.iter_content.return_value = [buffer.getvalue()]
    catalog = FakeCatalog()
    catalog.add(Category.CORE, None, record("nl_NL"))
    installer = PackageInstaller(catalog, language_dir, version="6.6", timeout=7)

    with patch("langpack.providers.requests.get", return_value=response) as get:
        installer.install(Category.CORE, None, "nl_NL")

    get.assert_called_once_with("https://example.test/nl_NL.zip", stream=True, timeout=7)
    assert (language_dir / "nl_NL.po").read_text() == "po"


def test_upgrade_reports_failure_as_false(language_dir):
    installer = PackageInstaller(FakeCatalog(), language_dir, version="6.6")
    update = UpdateRecord(
        category=Category.CORE,
        slug="default",
        locale="nl_NL",
        name="Core",
        version="6.6",
        package="/does/not/exist.zip",
    )
    assert installer.upgrade(update) is False


@pytest.mark.parametrize(
    "remote, local, expected",
    [
        ("2024-02-01 10:00:00", "2024-01-01 10:00:00+0000", True),
        ("2024-01-01 10:00:00", "2024-02-01 10:00:00+0000", False),
        ("2024-01-01 10:00:00", "2024-01-01 10:00:00+0000", False),
        ("2024-01-01 10:00:00", "", True),
        ("", "2024-01-01 10:00:00+0000", False),
        ("2024-01-01 00:00:00", "2025-06-01 12:00+0000", False),
        ("2025-07-01 00:00:00", "2025-06-01 12:00+0000", True),
        ("2024-01-01 10:30:00", "2024-01-01 12:00+0200", True),
        ("2024-01-01 09:30:00", "2024-01-01 12:00+0200", False),
    ],
)
def test_is_newer(remote, local, expected):
    assert is_newer(remote, local) is expected


def test_update_checker_only_reports_installed_newer_packages(language_dir):
    write_po(language_dir / "plugins", "akismet-ja.po", revision="2023-01-01 00:00:00+0000")
    write_po(language_dir / "plugins", "akismet-nl_NL.po", revision="2025-01-01 00:00:00+0000")
    catalog = FakeCatalog()
    catalog.add(
        Category.PLUGIN,
        "akismet",
        record("ja", "Japanese", updated="2024-01-01 00:00:00"),
        record("nl_NL", "Dutch", updated="2024-01-01 00:00:00"),
        record("de_DE", "German", updated="2024-01-01 00:00:00"),
    )
    checker = UpdateChecker(catalog, InstalledLanguages(language_dir), version="6.6")
    akismet = Target(Category.PLUGIN, "akismet", "Akismet", "5.3")

    updates = checker.fetch_pending_updates(Category.PLUGIN, [akismet])

    assert [(u.slug, u.locale, u.name, u.language_name) for u in updates] == [
        ("akismet", "ja", "Akismet", "Japanese")
    ]


def test_update_checker_reads_minute_precision_revisions(language_dir):
    write_po(language_dir, "nl_NL.po", revision="2025-06-01 12:00+0000")
    catalog = FakeCatalog()
    catalog.add(Category.CORE, None, record("nl_NL", "Dutch", updated="2024-01-01 00:00:00"))
    checker = UpdateChecker(catalog, InstalledLanguages(language_dir), version="6.6")

    assert checker.fetch_pending_updates(Category.CORE, [Target(Category.CORE)]) == []


def test_update_checker_skips_targets_without_translations(language_dir):
    catalog = FakeCatalog()
    checker = UpdateChecker(catalog, InstalledLanguages(language_dir), version="6.6")
    assert checker.fetch_pending_updates(Category.THEME, [Target(Category.THEME, "bare")]) == []
    assert catalog.calls == []
