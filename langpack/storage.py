"""Local state: language directory, installed packs, active locale, targets."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Set

import polib

from .errors import LangpackError, LanguageDirectoryError
from .structures import BASE_LOCALE, CORE_SLUG, Category, Target

logger = logging.getLogger(__name__)

PO_FILE_PATTERN = re.compile(
    r"^(?:(?P<domain>.+)-)?(?P<locale>[a-z]{2,3}(?:_[A-Z]{2})?(?:_[a-z0-9]+)?)\.po$"
)
HEADER_LINE_PATTERN = re.compile(r"^[\s*#@/]*(?P<key>[A-Za-z ]+):\s*(?P<value>.+?)\s*(?:\*/)?$")

CORE_TARGET = Target(category=Category.CORE, slug=CORE_SLUG, name="Core")


class FileStore:
    """Lists and deletes files in a local directory."""

    def list_directory(self, path: Path) -> List[str]:
        try:
            return sorted(entry.name for entry in path.iterdir() if entry.is_file())
        except OSError as exc:
            raise LanguageDirectoryError(
                "No files found in language directory."
            ) from exc

    def delete_file(self, path: Path) -> bool:
        try:
            path.unlink()
        except OSError as exc:
            logger.debug("Could not delete %s: %s", path, exc)
            return False
        return True


def read_po_headers(path: Path) -> Dict[str, str]:
    """Return the header fields of a gettext catalog.

    Unreadable or malformed catalogs yield an empty mapping.
    """

    try:
        po = polib.pofile(str(path))
    except (OSError, ValueError) as exc:
        logger.debug("Could not read headers from %s: %s", path, exc)
        return {}
    return dict(po.metadata)


class InstalledLanguages:
    """Derives installed locales from the ``.po`` files on disk.

    Nothing is cached: every query rescans the category directory, so the
    result always reflects installs and removals made earlier in the run.
    """

    def __init__(self, language_dir: Path, files: Optional[FileStore] = None) -> None:
        self.language_dir = language_dir
        self.files = files or FileStore()

    def translations(self, category: Category) -> Dict[str, Dict[str, Dict[str, str]]]:
        """Map text domain -> locale -> PO headers for one category."""

        directory = category.language_dir(self.language_dir)
        try:
            names = self.files.list_directory(directory)
        except LanguageDirectoryError:
            return {}

        found: Dict[str, Dict[str, Dict[str, str]]] = {}
        for name in names:
            match = PO_FILE_PATTERN.match(name)
            if not match:
                continue
            domain = match.group("domain") or CORE_SLUG
            locale = match.group("locale")
            found.setdefault(domain, {})[locale] = read_po_headers(directory / name)
        return found

    def locales(self, category: Category, slug: str = CORE_SLUG) -> Set[str]:
        available = set(self.translations(category).get(slug, {}))
        available.add(BASE_LOCALE)
        return available


class ActivationStore(ABC):
    """Persists the single active locale setting."""

    @abstractmethod
    def get_active_locale(self) -> str:
        """Return the active locale, the base locale when none is set."""

    @abstractmethod
    def set_active_locale(self, locale: str) -> None:
        """Persist ``locale``; an empty string clears the setting."""


class JsonActivationStore(ActivationStore):
    """Keeps the active locale in a small JSON state file."""

    KEY = "active_locale"

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LangpackError(f"Could not read state file {self.path}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def get_active_locale(self) -> str:
        return self._load().get(self.KEY) or BASE_LOCALE

    def set_active_locale(self, locale: str) -> None:
        data = self._load()
        data[self.KEY] = "" if locale == BASE_LOCALE else locale
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise LangpackError(f"Could not write state file {self.path}: {exc}") from exc


def _read_header_fields(path: Path, limit: int = 8192) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    try:
        with path.open(encoding="utf-8", errors="replace") as handle:
            chunk = handle.read(limit)
    except OSError:
        return fields
    for line in chunk.splitlines():
        match = HEADER_LINE_PATTERN.match(line)
        if match:
            fields.setdefault(match.group("key").strip(), match.group("value"))
    return fields


class TargetRegistry:
    """Discovers installed plugins and themes below the content directory."""

    NAME_HEADERS = {Category.PLUGIN: "Plugin Name", Category.THEME: "Theme Name"}

    def __init__(self, content_dir: Path) -> None:
        self.content_dir = content_dir

    def all_targets(self, category: Category) -> List[Target]:
        if category is Category.CORE:
            return [CORE_TARGET]

        root = self.content_dir / category.plural
        if not root.is_dir():
            return []

        targets: List[Target] = []
        for entry in sorted(root.iterdir()):
            if entry.is_dir():
                target = self._describe(category, entry.name, self._header_files(category, entry))
            elif category is Category.PLUGIN and entry.suffix == ".php":
                target = self._describe(category, entry.stem, [entry])
            else:
                continue
            if target is not None:
                targets.append(target)
        return targets

    def get(self, category: Category, slug: str) -> Target:
        if category is Category.CORE:
            return CORE_TARGET
        for target in self.all_targets(category):
            if target.slug == slug:
                return target
        return Target(category=category, slug=slug, name=slug)

    def _header_files(self, category: Category, directory: Path) -> List[Path]:
        if category is Category.THEME:
            return [directory / "style.css"]
        return sorted(directory.glob("*.php"))

    def _describe(self, category: Category, slug: str, candidates: List[Path]) -> Optional[Target]:
        header = self.NAME_HEADERS[category]
        for candidate in candidates:
            fields = _read_header_fields(candidate)
            if header in fields:
                return Target(
                    category=category,
                    slug=slug,
                    name=fields[header],
                    version=fields.get("Version", ""),
                )
        if category is Category.THEME and (self.content_dir / "themes" / slug).is_dir():
            return Target(category=category, slug=slug, name=slug)
        return None
