"""Catalog, download, and update-check providers."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import zipfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from dateutil.parser import parse as parse_datetime

from .errors import (
    CatalogError,
    ConfigurationError,
    LanguageNotFoundError,
    PackageInstallError,
)
from .structures import BASE_LOCALE, CORE_SLUG, Category, Target, TranslationRecord, UpdateRecord

logger = logging.getLogger(__name__)



def record_from_payload(payload: Mapping[str, Any]) -> TranslationRecord:
    """Build a record from one entry of a catalog response."""

    try:
        locale = str(payload["language"])
    except KeyError as exc:
        raise CatalogError("Catalog entry without a 'language' field.") from exc
    return TranslationRecord(
        locale=locale,
        english_name=str(payload.get("english_name") or locale),
        native_name=str(payload.get("native_name") or locale),
        updated=str(payload.get("updated") or ""),
        version=str(payload.get("version") or ""),
        package=str(payload.get("package") or ""),
    )


class CatalogProvider(ABC):
    """Abstract source of the translations offered for a target."""

    @abstractmethod
    def fetch_catalog(
        self,
        category: Category,
        slug: Optional[str] = None,
        *,
        version: str,
    ) -> List[TranslationRecord]:
        """Return the raw catalog records (without the base locale)."""


class HttpCatalogProvider(CatalogProvider):
    """Catalog backed by the remote translations API."""

    def __init__(self, api_url: str, *, timeout: int = 30) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def catalog_url(self, category: Category) -> str:
        return f"{self.api_url}/{category.plural}/1.0/"

    def fetch_catalog(
        self,
        category: Category,
        slug: Optional[str] = None,
        *,
        version: str,
    ) -> List[TranslationRecord]:
        params = {"version": version}
        if slug and category is not Category.CORE:
            params["slug"] = slug

        url = self.catalog_url(category)
        logger.debug("Fetching catalog %s %s", url, params)
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise CatalogError(f"Could not fetch the translation catalog: {exc}") from exc
        except ValueError as exc:
            raise CatalogError("Translation catalog response was not valid JSON.") from exc

        if not isinstance(data, Mapping):
            raise CatalogError("Translation catalog response was not a JSON object.")
        if data.get("error"):
            raise CatalogError(f"Translation catalog error: {data['error']}")
        return [record_from_payload(entry) for entry in data.get("translations") or []]


class StaticCatalogProvider(CatalogProvider):
    """Catalog read from a mapping of ``<category>/<slug>`` to record lists."""

    def __init__(self, entries: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        self.entries = entries

    @classmethod
    def from_file(cls, path: Path) -> "StaticCatalogProvider":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogError(f"Could not read catalog file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CatalogError(f"Catalog file {path} must contain a JSON object.")
        return cls(data)

    def fetch_catalog(
        self,
        category: Category,
        slug: Optional[str] = None,
        *,
        version: str,
    ) -> List[TranslationRecord]:
        key = f"{category.value}/{slug or CORE_SLUG}"
        entries = self.entries.get(key)
        if entries is None and category is Category.CORE:
            entries = self.entries.get(category.value)
        return [record_from_payload(entry) for entry in entries or []]


def build_catalog_provider(settings: Any) -> CatalogProvider:
    """Factory to create the configured catalog provider."""

    kind = (settings.LANGPACK_CATALOG or "http").strip().lower()
    if kind == "http":
        return HttpCatalogProvider(
            settings.LANGPACK_API_URL,
            timeout=settings.LANGPACK_HTTP_TIMEOUT,
        )
    if kind == "static":
        return StaticCatalogProvider.from_file(Path(settings.LANGPACK_CATALOG_FILE))
    raise ConfigurationError(f"Unknown catalog provider '{kind}'.")


class PackageInstaller:
    """Downloads language packs and unpacks them into the language directory."""

    def __init__(
        self,
        catalog: CatalogProvider,
        language_dir: Path,
        *,
        version: str,
        timeout: int = 30,
    ) -> None:
        self.catalog = catalog
        self.language_dir = language_dir
        self.version = version
        self.timeout = timeout

    def install(self, category: Category, slug: Optional[str], locale: str) -> str:
        """Install ``locale`` for a target; return the installed locale."""

        for record in self.catalog.fetch_catalog(category, slug, version=self.version):
            if record.locale == locale:
                break
        else:
            raise LanguageNotFoundError(locale)

        if not record.package:
            raise PackageInstallError(f"Could not install language '{locale}'.")
        self._download_and_extract(record.package, category)
        return locale

    def upgrade(self, update: UpdateRecord) -> bool:
        """Fetch the newer package for a pending update."""

        if not update.package:
            return False
        try:
            self._download_and_extract(update.package, update.category)
        except PackageInstallError as exc:
            logger.warning("%s", exc)
            return False
        return True

    def _download_and_extract(self, package: str, category: Category) -> None:
        destination = category.language_dir(self.language_dir)
        with tempfile.NamedTemporaryFile(suffix=".zip", delete=False) as tmp_file:
            tmp_path = tmp_file.name
        try:
            self._download(package, tmp_path)
            try:
                with zipfile.ZipFile(tmp_path, "r") as zip_ref:
                    members = [
                        info for info in zip_ref.infolist() if not info.is_dir()
                    ]
                    for info in members:
                        member = PurePosixPath(info.filename)
                        if member.is_absolute() or ".." in member.parts:
                            raise PackageInstallError(
                                f"Refusing to extract unsafe path '{info.filename}'."
                            )
                    destination.mkdir(parents=True, exist_ok=True)
                    for info in members:
                        target = destination / PurePosixPath(info.filename).name
                        with zip_ref.open(info) as source, target.open("wb") as out:
                            shutil.copyfileobj(source, out)
                        logger.debug("Extracted %s", target)
            except zipfile.BadZipFile as exc:
                raise PackageInstallError(f"Downloaded package is not a zip archive: {exc}") from exc
            except OSError as exc:
                raise PackageInstallError(f"Could not unpack language pack: {exc}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def _download(self, package: str, tmp_path: str) -> None:
        if not package.startswith(("http://", "https://")):
            try:
                shutil.copyfile(package, tmp_path)
            except OSError as exc:
                raise PackageInstallError(f"Could not read package {package}: {exc}") from exc
            return

        logger.info("Downloading translation from %s...", package)
        try:
            response = requests.get(package, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(tmp_path, "wb") as tmp_file:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        tmp_file.write(chunk)
        except requests.RequestException as exc:
            raise PackageInstallError(f"Download failed: {exc}") from exc


def _parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a catalog or PO timestamp; naive values are taken as UTC."""

    if not value or not value.strip():
        return None
    try:
        parsed = parse_datetime(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_newer(catalog_updated: str, installed_revision: str) -> bool:
    """Return True when the catalog package is newer than the installed one."""

    remote = _parse_timestamp(catalog_updated)
    if remote is None:
        return False
    local = _parse_timestamp(installed_revision)
    return local is None or remote > local


class UpdateChecker:
    """Finds installed translations for which the catalog has a newer package."""

    def __init__(self, catalog: CatalogProvider, installed: Any, *, version: str) -> None:
        self.catalog = catalog
        self.installed = installed
        self.version = version

    def fetch_pending_updates(
        self,
        category: Category,
        targets: Sequence[Target],
    ) -> List[UpdateRecord]:
        on_disk: Dict[str, Dict[str, Dict[str, str]]] = self.installed.translations(category)
        updates: List[UpdateRecord] = []
        for target in targets:
            installed = on_disk.get(target.slug, {})
            if not installed:
                continue
            slug = None if category is Category.CORE else target.slug
            for record in self.catalog.fetch_catalog(category, slug, version=self.version):
                if record.locale == BASE_LOCALE or record.locale not in installed:
                    continue
                revision = installed[record.locale].get("PO-Revision-Date", "")
                if not is_newer(record.updated, revision):
                    continue
                updates.append(
                    UpdateRecord(
                        category=category,
                        slug=target.slug,
                        locale=record.locale,
                        name=target.display_name,
                        version=record.version or target.version,
                        language_name=record.english_name,
                        package=record.package,
                        updated=record.updated,
                    )
                )
        return updates
