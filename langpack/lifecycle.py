"""Batch install, uninstall, update and activation of language packs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from .errors import (
    ActiveLanguageError,
    ArgumentError,
    LangpackError,
    LanguageNotFoundError,
    LanguageNotInstalledError,
)
from .providers import CatalogProvider, PackageInstaller, UpdateChecker
from .reconciler import FieldFilter, apply_filters, reconcile, with_base_locale
from .storage import ActivationStore, FileStore, InstalledLanguages, TargetRegistry
from .structures import (
    BASE_LOCALE,
    CORE_SLUG,
    BatchTally,
    Category,
    Outcome,
    Target,
    TranslationRecord,
    UpdateSummary,
    target_label,
)

logger = logging.getLogger(__name__)

PACKAGE_EXTENSIONS = ("po", "mo", "l10n.php")
CORE_FILE_PREFIXES = ("", "admin-", "admin-network-", "continents-cities-")


@dataclass
class Workspace:
    """The collaborators shared by every category."""

    language_dir: Path
    version: str
    catalog: CatalogProvider
    installer: PackageInstaller
    installed: InstalledLanguages
    files: FileStore
    activation: ActivationStore
    registry: TargetRegistry
    updates: UpdateChecker


def owned_files(target: Target, locale: str, names: Sequence[str]) -> List[str]:
    """Return the files in ``names`` that belong to one (target, locale) pair."""

    if target.category is Category.CORE:
        prefixes: Tuple[str, ...] = CORE_FILE_PREFIXES
        script_prefix = ""
    else:
        prefixes = (f"{target.slug}-",)
        script_prefix = f"{target.slug}-"

    expected = {
        f"{prefix}{locale}.{extension}"
        for prefix in prefixes
        for extension in PACKAGE_EXTENSIONS
    }
    scripts = re.compile(
        rf"^{re.escape(script_prefix)}{re.escape(locale)}-[0-9a-f]{{32}}\.json$"
    )
    return [name for name in names if name in expected or scripts.match(name)]


class LifecycleExecutor:
    """Drives language pack operations for one category of targets."""

    def __init__(
        self,
        category: Category,
        workspace: Workspace,
        *,
        verbose: bool = False,
    ) -> None:
        self.category = category
        self.workspace = workspace
        self.verbose = verbose

    @property
    def directory(self) -> Path:
        return self.category.language_dir(self.workspace.language_dir)

    def resolve_targets(
        self,
        slugs: Sequence[str],
        *,
        all_targets: bool = False,
    ) -> List[Target]:
        """Turn command arguments into targets; ``--all`` may yield none."""

        registry = self.workspace.registry
        if self.category is Category.CORE:
            return registry.all_targets(Category.CORE)
        if all_targets:
            return registry.all_targets(self.category)
        if not slugs:
            raise ArgumentError(
                f"Please specify one or more {self.category.plural}, or use --all."
            )
        return [registry.get(self.category, slug) for slug in slugs]

    def _slug(self, target: Target) -> Optional[str]:
        return None if target.category is Category.CORE else target.slug

    def installed_locales(self, target: Target) -> Set[str]:
        slug = CORE_SLUG if target.category is Category.CORE else target.slug
        return self.workspace.installed.locales(self.category, slug)

    def available_translations(self, target: Target) -> List[TranslationRecord]:
        records = self.workspace.catalog.fetch_catalog(
            self.category,
            self._slug(target),
            version=self.workspace.version,
        )
        return with_base_locale(records)

    def list_translations(
        self,
        targets: Sequence[Target],
        filters: Sequence[FieldFilter] = (),
    ) -> List[TranslationRecord]:
        pending = self.workspace.updates.fetch_pending_updates(self.category, targets)
        active_locale = self.workspace.activation.get_active_locale()

        translations: List[TranslationRecord] = []
        for target in targets:
            records = reconcile(
                self.available_translations(target),
                self.installed_locales(target),
                pending,
                active_locale,
                target=target,
            )
            translations.extend(apply_filters(records, filters))
        return translations

    def is_installed(self, target: Target, locales: Sequence[str]) -> bool:
        available = self.installed_locales(target)
        return all(locale in available for locale in locales)

    def install(
        self,
        targets: Sequence[Target],
        locales: Sequence[str],
        *,
        activate: bool = False,
    ) -> BatchTally:
        """Install every locale for every target."""

        if not locales:
            raise ArgumentError("Please specify one or more languages.")
        if activate and len(set(locales)) > 1:
            raise ArgumentError("Only a single language can be active.")
        if activate and self.category is not Category.CORE:
            raise ArgumentError("Only core languages can be activated.")

        tally = BatchTally(total=len(targets) * len(locales))
        for target in targets:
            for locale in locales:
                outcome = self._install_one(target, locale)
                tally.record(target_label(target), locale, outcome)
                if activate and outcome in (Outcome.INSTALLED, Outcome.ALREADY_INSTALLED):
                    changed = self.activate(locale)
                    tally.activated = bool(tally.activated) or changed
        return tally

    def _install_one(self, target: Target, locale: str) -> Outcome:
        if locale in self.installed_locales(target):
            if self.verbose:
                print(f"Language '{locale}' already installed for {target.display_name}.")
            return Outcome.ALREADY_INSTALLED

        logger.info("Installing '%s' for %s...", locale, target_label(target))
        try:
            self.workspace.installer.install(self.category, self._slug(target), locale)
        except LanguageNotFoundError as exc:
            if self.verbose:
                print(f"{exc} ({target.display_name})")
            return Outcome.NOT_AVAILABLE
        except LangpackError as exc:
            print(f"Could not install language '{locale}' for {target.display_name}: {exc}")
            return Outcome.NOT_INSTALLED

        if self.verbose:
            print(f"Language '{locale}' installed for {target.display_name}.")
        return Outcome.INSTALLED

    def uninstall(
        self,
        targets: Sequence[Target],
        locales: Sequence[str],
        *,
        explicit: bool = True,
    ) -> BatchTally:
        """Remove every locale from every target.

        A locale missing from an explicitly named target is an error; when the
        targets came from ``--all`` it is only a skip. Reaching the active
        locale raises ``ActiveLanguageError`` and stops the whole batch.
        """

        if not locales:
            raise ArgumentError("Please specify one or more languages.")

        names = self.workspace.files.list_directory(self.directory)
        active_locale = self.workspace.activation.get_active_locale()

        tally = BatchTally(total=len(targets) * len(locales))
        for target in targets:
            for locale in locales:
                if locale not in self.installed_locales(target):
                    outcome = Outcome.NOT_INSTALLED if explicit else Outcome.NOT_INSTALLED_SKIPPED
                    tally.record(target_label(target), locale, outcome)
                    continue

                if locale == active_locale:
                    raise ActiveLanguageError(locale, tally.results)

                outcome = self._remove_files(target, locale, names)
                tally.record(target_label(target), locale, outcome)
        return tally

    def _remove_files(self, target: Target, locale: str, names: List[str]) -> Outcome:
        matched = owned_files(target, locale, names)
        if not matched:
            return Outcome.ALREADY_UNINSTALLED

        removed = 0
        for name in matched:
            if self.workspace.files.delete_file(self.directory / name):
                removed += 1
                names.remove(name)
            else:
                logger.warning("Could not delete %s", self.directory / name)

        logger.info(
            "Removed %d of %d files for '%s' (%s)",
            removed,
            len(matched),
            locale,
            target_label(target),
        )
        if removed == len(matched):
            return Outcome.UNINSTALLED
        if removed:
            return Outcome.PARTIALLY_UNINSTALLED
        return Outcome.FAILED_TO_UNINSTALL

    def update(self, targets: Sequence[Target], *, dry_run: bool = False) -> UpdateSummary:
        """Refresh installed translations that have a newer package."""

        available = self.workspace.updates.fetch_pending_updates(self.category, targets)
        summary = UpdateSummary(category=self.category, available=available, dry_run=dry_run)
        if not available or dry_run:
            return summary

        for update in available:
            language = update.language_name or update.locale
            print(f"Updating '{language}' translation for {update.name} {update.version}...")
            if self.workspace.installer.upgrade(update):
                summary.updated += 1
                if self.verbose:
                    print("Translation updated successfully.")
            else:
                summary.failures.append(f"{update.name} ({update.locale})")
        return summary

    def activate(self, locale: str) -> bool:
        """Make ``locale`` the active language; return False if it already was."""

        if locale not in self.workspace.installed.locales(Category.CORE):
            raise LanguageNotInstalledError(locale)

        activation = self.workspace.activation
        if locale == activation.get_active_locale():
            return False

        activation.set_active_locale("" if locale == BASE_LOCALE else locale)
        logger.info("Active language set to '%s'", locale)
        return True
