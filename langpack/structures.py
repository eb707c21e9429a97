"""Core data structures for the language pack manager."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


BASE_LOCALE = "en_US"
CORE_SLUG = "default"


class Category(Enum):
    """The three kinds of targets a language pack can belong to."""

    CORE = "core"
    PLUGIN = "plugin"
    THEME = "theme"

    @property
    def plural(self) -> str:
        return "core" if self is Category.CORE else f"{self.value}s"

    @property
    def directory(self) -> str:
        return CATEGORY_DIRECTORIES[self]

    def language_dir(self, root: Path) -> Path:
        """Return the package directory for this category below ``root``."""

        return root / self.directory if self.directory else root


# Core packages sit at the root of the language directory.
CATEGORY_DIRECTORIES: Dict[Category, str] = {
    Category.CORE: "",
    Category.PLUGIN: "plugins",
    Category.THEME: "themes",
}


@dataclass(frozen=True)
class Target:
    """A specific product, plugin, or theme that language packs apply to."""

    category: Category
    slug: str = CORE_SLUG
    name: str = ""
    version: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.slug


@dataclass(frozen=True)
class TranslationRecord:
    """One catalog entry, optionally enriched with derived fields."""

    locale: str
    english_name: str
    native_name: str
    updated: str = ""
    version: str = ""
    package: str = ""
    status: str = ""
    update: str = ""
    target: str = ""

    def with_state(self, *, status: str, update: str, target: str = "") -> "TranslationRecord":
        return replace(self, status=status, update=update, target=target or self.target)


@dataclass(frozen=True)
class UpdateRecord:
    """A pending translation update surfaced by the update check."""

    category: Category
    slug: str
    locale: str
    name: str
    version: str
    language_name: str = ""
    package: str = ""
    updated: str = ""


class Outcome(Enum):
    """Per-pair result of a batch operation and how it is tallied."""

    INSTALLED = ("installed", "success")
    ALREADY_INSTALLED = ("already installed", "skip")
    NOT_AVAILABLE = ("not available", "skip")
    NOT_INSTALLED = ("not installed", "error")
    UNINSTALLED = ("uninstalled", "success")
    PARTIALLY_UNINSTALLED = ("partially uninstalled", "error")
    FAILED_TO_UNINSTALL = ("failed to uninstall", "error")
    ALREADY_UNINSTALLED = ("already uninstalled", "skip")
    # Absent on one of several "all" targets.
    NOT_INSTALLED_SKIPPED = ("not installed", "skip")

    def __init__(self, label: str, kind: str) -> None:
        self.label = label
        self.kind = kind


@dataclass
class OperationResult:
    """One row per (target, locale) pair processed by a batch operation."""

    name: str
    locale: str
    outcome: Outcome

    @property
    def status(self) -> str:
        return self.outcome.label

    def as_row(self) -> Dict[str, str]:
        return {"name": self.name, "locale": self.locale, "status": self.status}


@dataclass
class BatchTally:
    """Success/error/skip counters for one batch run."""

    total: int = 0
    successes: int = 0
    errors: int = 0
    skips: int = 0
    results: List[OperationResult] = field(default_factory=list)
    # None when activation was not requested or no locale reached it.
    activated: Optional[bool] = None

    def record(self, name: str, locale: str, outcome: Outcome) -> OperationResult:
        result = OperationResult(name=name, locale=locale, outcome=outcome)
        self.results.append(result)
        if outcome.kind == "success":
            self.successes += 1
        elif outcome.kind == "error":
            self.errors += 1
        else:
            self.skips += 1
        return result

    @property
    def processed(self) -> int:
        return self.successes + self.errors + self.skips

    @property
    def level(self) -> str:
        """Return ``success``, ``warning`` or ``error`` for the final report."""

        if not self.errors:
            return "success"
        return "warning" if self.successes else "error"

    def summary(self, verb: str, noun: str = "language") -> str:
        """Render the batch summary line, e.g. ``Installed 2 of 3 languages.``"""

        nouns = noun if self.total == 1 else f"{noun}s"
        if self.errors:
            details = f" ({self.errors} failed"
            if self.skips:
                details += f", {self.skips} skipped"
            details += ")"
            if self.successes:
                return f"Only {self.successes} of {self.total} {nouns} {verb}{details}."
            return f"No {noun}s {verb}{details}."
        skipped = f" ({self.skips} skipped)" if self.skips else ""
        return f"{verb.capitalize()} {self.successes} of {self.total} {nouns}{skipped}."


@dataclass
class UpdateSummary:
    """Report returned after an update run."""

    category: Category
    available: List[UpdateRecord] = field(default_factory=list)
    updated: int = 0
    dry_run: bool = False
    failures: List[str] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.available

    @property
    def level(self) -> str:
        if self.up_to_date or self.dry_run or self.updated == len(self.available):
            return "success"
        return "warning" if self.updated else "error"

    def message(self) -> str:
        if self.up_to_date:
            return "Translations are up to date."
        return f"Updated {self.updated}/{len(self.available)} translations."


def target_label(target: Optional[Target]) -> str:
    if target is None or target.category is Category.CORE:
        return "core"
    return target.slug
