"""Merge a remote catalog with local installation state.

Everything in this module is a pure function of its inputs: the caller
fetches the catalog, the installed set, the pending updates and the active
locale, and the reconciler only derives the ``status`` and ``update`` fields
and filters the result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from .errors import ArgumentError
from .structures import (
    BASE_LOCALE,
    CORE_SLUG,
    Category,
    Target,
    TranslationRecord,
    UpdateRecord,
)

STATUS_ACTIVE = "active"
STATUS_INSTALLED = "installed"
STATUS_UNINSTALLED = "uninstalled"
UPDATE_AVAILABLE = "available"
UPDATE_NONE = "none"

BASE_RECORD = TranslationRecord(
    locale=BASE_LOCALE,
    english_name="English (United States)",
    native_name="English (United States)",
    updated="",
)

RecordAccessor = Callable[[TranslationRecord], str]

RECORD_FIELDS: Dict[str, RecordAccessor] = {
    "language": lambda record: record.locale,
    "english_name": lambda record: record.english_name,
    "native_name": lambda record: record.native_name,
    "status": lambda record: record.status,
    "update": lambda record: record.update,
    "updated": lambda record: record.updated,
    "version": lambda record: record.version,
    "package": lambda record: record.package,
    "plugin": lambda record: record.target,
    "theme": lambda record: record.target,
}

BASE_FIELDS = ["language", "english_name", "native_name", "status", "update", "updated"]


def default_fields(category: Category) -> List[str]:
    """Columns displayed by ``list`` when no ``--fields`` are given."""

    if category is Category.CORE:
        return list(BASE_FIELDS)
    return [category.value] + BASE_FIELDS


def natural_key(value: str) -> List[object]:
    """Case-insensitive natural sort key (``ab2`` sorts before ``ab10``)."""

    parts = re.split(r"(\d+)", value.lower())
    return [int(part) if part.isdigit() else part for part in parts]


def with_base_locale(records: Iterable[TranslationRecord]) -> List[TranslationRecord]:
    """Append the synthetic base locale exactly once and sort by locale."""

    merged = [record for record in records if record.locale != BASE_LOCALE]
    merged.append(BASE_RECORD)
    merged.sort(key=lambda record: natural_key(record.locale))
    return merged


def resolve_status(locale: str, installed: Iterable[str], active_locale: str) -> str:
    if locale == active_locale:
        return STATUS_ACTIVE
    if locale in installed:
        return STATUS_INSTALLED
    return STATUS_UNINSTALLED


def has_update(
    locale: str,
    pending_updates: Sequence[UpdateRecord],
    target: Optional[Target] = None,
) -> bool:
    for update in pending_updates:
        if update.locale != locale:
            continue
        if target is None:
            return True
        slug = CORE_SLUG if target.category is Category.CORE else target.slug
        if update.category is target.category and (
            target.category is Category.CORE or update.slug == slug
        ):
            return True
    return False


def reconcile(
    catalog: Sequence[TranslationRecord],
    installed: Iterable[str],
    pending_updates: Sequence[UpdateRecord],
    active_locale: str,
    target: Optional[Target] = None,
) -> List[TranslationRecord]:
    """Derive ``status`` and ``update`` for every catalog record, keeping order."""

    installed_set = frozenset(installed)
    label = target.slug if target is not None and target.category is not Category.CORE else ""
    return [
        record.with_state(
            status=resolve_status(record.locale, installed_set, active_locale),
            update=UPDATE_AVAILABLE
            if has_update(record.locale, pending_updates, target)
            else UPDATE_NONE,
            target=label,
        )
        for record in catalog
    ]


@dataclass(frozen=True)
class FieldFilter:
    """Keeps records whose field value is one of the accepted values."""

    field: str
    accepted: FrozenSet[str]

    @classmethod
    def parse(cls, field: str, raw: str) -> "FieldFilter":
        if field not in RECORD_FIELDS:
            raise ArgumentError(f"Invalid field: {field}.")
        values = frozenset(value.strip() for value in raw.split(",") if value.strip())
        return cls(field=field, accepted=values)

    def matches(self, record: TranslationRecord) -> bool:
        return RECORD_FIELDS[self.field](record) in self.accepted


def build_filters(constraints: Mapping[str, Optional[str]]) -> List[FieldFilter]:
    """Turn ``{field: "a,b"}`` pairs into filters, ignoring unset fields."""

    return [
        FieldFilter.parse(field, raw)
        for field, raw in constraints.items()
        if raw is not None
    ]


def apply_filters(
    records: Iterable[TranslationRecord],
    filters: Sequence[FieldFilter],
) -> List[TranslationRecord]:
    return [record for record in records if all(f.matches(record) for f in filters)]


def as_row(record: TranslationRecord, fields: Sequence[str]) -> Dict[str, str]:
    """Project a record onto the requested display fields."""

    row: Dict[str, str] = {}
    for field in fields:
        accessor = RECORD_FIELDS.get(field)
        if accessor is None:
            raise ArgumentError(f"Invalid field: {field}.")
        row[field] = accessor(record)
    return row
