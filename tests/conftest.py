from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from langpack.errors import LanguageDirectoryError, LanguageNotFoundError, PackageInstallError
from langpack.lifecycle import LifecycleExecutor, Workspace
from langpack.providers import CatalogProvider
from langpack.storage import ActivationStore, FileStore, InstalledLanguages, TargetRegistry
from langpack.structures import BASE_LOCALE, Category, Target, TranslationRecord, UpdateRecord


def write_po(directory: Path, name: str, revision: str = "2020-01-01 00:00:00+0000") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(
        'msgid ""\n'
        'msgstr ""\n'
        f'"PO-Revision-Date: {revision}\\n"\n'
        '"MIME-Version: 1.0\\n"\n'
        "\n"
        'msgid "Hello"\n'
        'msgstr "Hallo"\n',
        encoding="utf-8",
    )
    return path


def record(locale: str, name: str = "", updated: str = "2024-01-01 00:00:00") -> TranslationRecord:
    return TranslationRecord(
        locale=locale,
        english_name=name or locale,
        native_name=name or locale,
        updated=updated,
        version="1.0",
        package=f"https://example.test/{locale}.zip",
    )


class FakeCatalog(CatalogProvider):
    def __init__(self) -> None:
        self.entries: Dict[Tuple[Category, Optional[str]], List[TranslationRecord]] = {}
        self.calls: List[Tuple[Category, Optional[str]]] = []

    def add(self, category: Category, slug: Optional[str], *records: TranslationRecord) -> None:
        self.entries.setdefault((category, slug), []).extend(records)

    def fetch_catalog(self, category, slug=None, *, version):
        self.calls.append((category, slug))
        return list(self.entries.get((category, slug), []))


class FakeInstaller:
    """Writes a ``.po`` file for every successful install."""

    def __init__(self, catalog: FakeCatalog, language_dir: Path) -> None:
        self.catalog = catalog
        self.language_dir = language_dir
        self.failing: Set[str] = set()
        self.installed: List[Tuple[Category, Optional[str], str]] = []
        self.upgraded: List[UpdateRecord] = []
        self.upgrade_results: Dict[str, bool] = {}

    def install(self, category, slug, locale):
        records = self.catalog.fetch_catalog(category, slug, version="6.6")
        if locale not in {item.locale for item in records}:
            raise LanguageNotFoundError(locale)
        if locale in self.failing:
            raise PackageInstallError(f"Could not install language '{locale}'.")
        prefix = f"{slug}-" if slug else ""
        directory = category.language_dir(self.language_dir)
        write_po(directory, f"{prefix}{locale}.po")
        (directory / f"{prefix}{locale}.mo").write_bytes(b"mo")
        self.installed.append((category, slug, locale))
        return locale

    def upgrade(self, update):
        self.upgraded.append(update)
        return self.upgrade_results.get(update.locale, True)


class MemoryActivationStore(ActivationStore):
    def __init__(self, locale: str = "") -> None:
        self.locale = locale
        self.writes: List[str] = []

    def get_active_locale(self) -> str:
        return self.locale or BASE_LOCALE

    def set_active_locale(self, locale: str) -> None:
        self.writes.append(locale)
        self.locale = locale


class FakeUpdates:
    def __init__(self) -> None:
        self.pending: List[UpdateRecord] = []

    def fetch_pending_updates(self, category, targets):
        slugs = {target.slug for target in targets}
        return [
            update
            for update in self.pending
            if update.category is category and update.slug in slugs
        ]


class StubbornFileStore(FileStore):
    """A file store that refuses to delete selected files."""

    def __init__(self) -> None:
        self.undeletable: Set[str] = set()
        self.deleted: List[str] = []
        self.unlistable = False

    def list_directory(self, path):
        if self.unlistable:
            raise LanguageDirectoryError("No files found in language directory.")
        return super().list_directory(path)

    def delete_file(self, path):
        if path.name in self.undeletable:
            return False
        self.deleted.append(path.name)
        return super().delete_file(path)


def write_plugin(content_dir: Path, slug: str, name: str, version: str = "1.0") -> None:
    directory = content_dir / "plugins" / slug
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{slug}.php").write_text(
        f"<?php\n/**\n * Plugin Name: {name}\n * Version: {version}\n */\n",
        encoding="utf-8",
    )


@pytest.fixture
def language_dir(tmp_path: Path) -> Path:
    path = tmp_path / "languages"
    (path / "plugins").mkdir(parents=True)
    (path / "themes").mkdir()
    return path


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    path = tmp_path / "content"
    write_plugin(path, "akismet", "Akismet Anti-spam", "5.3")
    write_plugin(path, "hello-dolly", "Hello Dolly", "1.7.2")
    return path


@pytest.fixture
def catalog() -> FakeCatalog:
    fake = FakeCatalog()
    fake.add(Category.CORE, None, record("nl_NL", "Dutch"), record("de_DE", "German"))
    fake.add(Category.PLUGIN, "akismet", record("nl_NL", "Dutch"), record("ja", "Japanese"))
    fake.add(Category.PLUGIN, "hello-dolly", record("nl_NL", "Dutch"))
    return fake


@pytest.fixture
def workspace(language_dir, content_dir, catalog) -> Workspace:
    files = StubbornFileStore()
    return Workspace(
        language_dir=language_dir,
        version="6.6",
        catalog=catalog,
        installer=FakeInstaller(catalog, language_dir),
        installed=InstalledLanguages(language_dir, files),
        files=files,
        activation=MemoryActivationStore(),
        registry=TargetRegistry(content_dir),
        updates=FakeUpdates(),
    )


@pytest.fixture
def core(workspace) -> LifecycleExecutor:
    return LifecycleExecutor(Category.CORE, workspace)


@pytest.fixture
def plugins(workspace) -> LifecycleExecutor:
    return LifecycleExecutor(Category.PLUGIN, workspace)


def plugin(slug: str) -> Target:
    return Target(category=Category.PLUGIN, slug=slug, name=slug)


def pending(category: Category, slug: str, locale: str, name: str = "") -> UpdateRecord:
    return UpdateRecord(
        category=category,
        slug=slug,
        locale=locale,
        name=name or slug,
        version="1.0",
        language_name=locale,
    )

