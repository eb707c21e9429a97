"""Prepper-backed configuration loader for the language pack manager."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError

APP_NAME = "Langpack"
DEFAULT_API_URL = "https://api.wordpress.org/translations"
MINIMUM_PRODUCT_VERSION = "4.0"


class LangpackConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LANGPACK_CONTENT_DIR: str | None = Field(
        default=None,
        description="Host application content root (defaults to the working directory).",
    )
    LANGPACK_LANGUAGE_DIR: str | None = Field(
        default=None,
        description="Language pack store (defaults to <content>/languages).",
    )
    LANGPACK_STATE_FILE: str | None = Field(
        default=None,
        description="JSON file holding the active locale.",
    )
    LANGPACK_API_URL: str = Field(default=DEFAULT_API_URL)
    LANGPACK_PRODUCT_VERSION: str = Field(default="6.6")
    LANGPACK_HTTP_TIMEOUT: int = Field(default=30)
    LANGPACK_CATALOG: Literal["http", "static"] = Field(
        default="http",
        description="Catalog provider selection.",
    )
    LANGPACK_CATALOG_FILE: str | None = Field(default=None)
    LANGPACK_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_catalog(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LANGPACK_CATALOG")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower()
                synonyms = {"remote": "http", "https": "http", "file": "static"}
                data["LANGPACK_CATALOG"] = synonyms.get(normalized, normalized)
        return data

    @property
    def content_dir(self) -> Path:
        return Path(self.LANGPACK_CONTENT_DIR or Path.cwd()).expanduser()

    @property
    def language_dir(self) -> Path:
        if self.LANGPACK_LANGUAGE_DIR:
            return Path(self.LANGPACK_LANGUAGE_DIR).expanduser()
        return self.content_dir / "languages"

    @property
    def state_file(self) -> Path:
        if self.LANGPACK_STATE_FILE:
            return Path(self.LANGPACK_STATE_FILE).expanduser()
        return self.content_dir / "langpack-state.json"


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=LangpackConfig,
        )

        model = LangpackConfig.validate(combined, provenance=provenance)
        _validate_settings(model)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=LangpackConfig,
        )
    except IoError as exc:
        raise ConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise ConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None:
                continue
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _validate_settings(settings: LangpackConfig) -> None:
    errors: list[str] = []

    if not settings.LANGPACK_PRODUCT_VERSION.strip():
        errors.append("LANGPACK_PRODUCT_VERSION must not be empty.")
    if settings.LANGPACK_HTTP_TIMEOUT <= 0:
        errors.append("LANGPACK_HTTP_TIMEOUT must be a positive number of seconds.")
    if settings.LANGPACK_CATALOG == "static" and not settings.LANGPACK_CATALOG_FILE:
        errors.append(
            "LANGPACK_CATALOG_FILE is required when LANGPACK_CATALOG is 'static'."
        )

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def version_tuple(version: str) -> tuple[int, ...]:
    """Parse a dotted version string, ignoring any non-numeric suffix."""

    parts: list[int] = []
    for piece in version.strip().split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)


def is_supported_version(version: str) -> bool:
    return version_tuple(version) >= version_tuple(MINIMUM_PRODUCT_VERSION)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> LangpackConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
