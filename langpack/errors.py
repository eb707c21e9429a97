"""Error definitions for the language pack manager."""

from __future__ import annotations

from typing import List, Optional

from .structures import OperationResult


class LangpackError(Exception):
    """Base exception for all custom errors."""


class ArgumentError(LangpackError):
    """Raised when a command is invoked with invalid arguments."""


class ConfigurationError(LangpackError):
    """Raised when the settings are invalid."""


class UnsupportedVersionError(LangpackError):
    """Raised when the host product is too old for language pack management."""


class CatalogError(LangpackError):
    """Raised when the remote catalog cannot be fetched or parsed."""


class LanguageNotFoundError(LangpackError):
    """Raised when a locale is not offered by the catalog for a target."""

    def __init__(self, locale: str) -> None:
        super().__init__(f"Language '{locale}' not found.")
        self.locale = locale


class LanguageNotInstalledError(LangpackError):
    """Raised when an operation references a locale that is not installed."""

    def __init__(self, locale: str) -> None:
        super().__init__("Language not installed.")
        self.locale = locale


class PackageInstallError(LangpackError):
    """Raised when a language pack could not be downloaded or unpacked."""


class LanguageDirectoryError(LangpackError):
    """Raised when the local language directory cannot be listed."""


class ActiveLanguageError(LangpackError):
    """Raised when an uninstall reaches the currently active locale."""

    def __init__(
        self,
        locale: str,
        results: Optional[List[OperationResult]] = None,
    ) -> None:
        super().__init__(f"The '{locale}' language is active.")
        self.locale = locale
        self.results = list(results or [])
