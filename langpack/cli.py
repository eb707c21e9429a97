"""Command line interface for the language pack manager."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, List, Optional, Sequence

from .configuration import LangpackConfig, get_settings, is_supported_version
from .errors import (
    ActiveLanguageError,
    ArgumentError,
    ConfigurationError,
    LangpackError,
    UnsupportedVersionError,
)
from .formatter import FORMATS, display_items, error, report, success, warning
from .lifecycle import LifecycleExecutor, Workspace
from .providers import PackageInstaller, UpdateChecker, build_catalog_provider
from .reconciler import as_row, build_filters, default_fields
from .storage import FileStore, InstalledLanguages, JsonActivationStore, TargetRegistry
from .structures import Category, Outcome, Target

FILTER_OPTIONS = {
    "language": "--language",
    "english_name": "--english-name",
    "native_name": "--native-name",
    "status": "--status",
    "update": "--update",
    "updated": "--updated",
}
UPDATE_FIELDS = ["Type", "Name", "Version", "Language"]
RESULT_FIELDS = ["name", "locale", "status"]


def _add_target_arguments(parser: argparse.ArgumentParser, category: Category) -> None:
    if category is Category.CORE:
        return
    parser.add_argument(
        "--all",
        action="store_true",
        help=f"Apply to all installed {category.plural}.",
    )


def _add_category_parser(
    subparsers: argparse._SubParsersAction,
    category: Category,
) -> None:
    noun = category.value
    parser = subparsers.add_parser(
        noun,
        help=f"Manage {noun} language packs.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("list", help="List available languages.")
    if category is not Category.CORE:
        list_parser.add_argument(
            "targets",
            nargs="*",
            help=f"One or more {category.plural} to list languages for.",
        )
    _add_target_arguments(list_parser, category)
    for field, option in FILTER_OPTIONS.items():
        list_parser.add_argument(
            option,
            dest=f"filter_{field}",
            metavar="VALUES",
            help=f"Only show rows whose {field} is one of the comma-separated values.",
        )
    list_parser.add_argument("--field", help="Display the value of a single field.")
    list_parser.add_argument("--fields", help="Limit the output to specific fields.")
    list_parser.add_argument(
        "--format",
        choices=FORMATS,
        default="table",
        help="Render output in a particular format (default: table).",
    )

    install_parser = commands.add_parser("install", help="Install languages.")
    install_parser.add_argument(
        "args",
        nargs="*",
        metavar="ARG" if category is not Category.CORE else "LANGUAGE",
        help=(
            "Language codes to install."
            if category is Category.CORE
            else f"The {noun} (omit with --all) followed by language codes."
        ),
    )
    _add_target_arguments(install_parser, category)
    if category is Category.CORE:
        install_parser.add_argument(
            "--activate",
            action="store_true",
            help="Activate the language after installing it.",
        )
    install_parser.add_argument(
        "--format",
        choices=("summary",) + FORMATS,
        default="summary",
        help="Render per-language results (default: summary line only).",
    )

    uninstall_parser = commands.add_parser("uninstall", help="Uninstall languages.")
    uninstall_parser.add_argument("args", nargs="*", metavar="ARG")
    _add_target_arguments(uninstall_parser, category)
    uninstall_parser.add_argument(
        "--format",
        choices=("summary",) + FORMATS,
        default="summary",
        help="Render per-language results (default: summary line only).",
    )

    update_parser = commands.add_parser("update", help="Update installed languages.")
    if category is not Category.CORE:
        update_parser.add_argument("targets", nargs="*")
    _add_target_arguments(update_parser, category)
    update_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview which translations would be updated.",
    )

    installed_parser = commands.add_parser(
        "is-installed",
        help="Exit with 0 when every language is installed, 1 otherwise.",
    )
    installed_parser.add_argument("args", nargs="+", metavar="ARG")

    if category is Category.CORE:
        activate_parser = commands.add_parser("activate", help="Activate a language.")
        activate_parser.add_argument("language")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="langpack",
        description="Install, update, and activate language packs for core, plugins, and themes.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show a line for every language processed.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log catalog requests and file operations for troubleshooting.",
    )
    subparsers = parser.add_subparsers(dest="category", required=True)
    for category in Category:
        _add_category_parser(subparsers, category)

    switch_parser = subparsers.add_parser(
        "switch-language",
        help="Activate an installed core language.",
    )
    switch_parser.add_argument("language")
    return parser


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_workspace(settings: LangpackConfig) -> Workspace:
    """Wire the configured collaborators together."""

    language_dir = settings.language_dir
    files = FileStore()
    catalog = build_catalog_provider(settings)
    installed = InstalledLanguages(language_dir, files)
    version = settings.LANGPACK_PRODUCT_VERSION
    return Workspace(
        language_dir=language_dir,
        version=version,
        catalog=catalog,
        installer=PackageInstaller(
            catalog,
            language_dir,
            version=version,
            timeout=settings.LANGPACK_HTTP_TIMEOUT,
        ),
        installed=installed,
        files=files,
        activation=JsonActivationStore(settings.state_file),
        registry=TargetRegistry(settings.content_dir),
        updates=UpdateChecker(catalog, installed, version=version),
    )


def split_target_args(
    category: Category,
    values: Sequence[str],
    *,
    all_targets: bool,
) -> tuple[List[str], List[str]]:
    """Split positional arguments into target slugs and language codes."""

    values = list(values)
    if category is Category.CORE or all_targets:
        return [], values
    if not values:
        raise ArgumentError(
            f"Please specify one or more {category.plural}, or use --all."
        )
    return values[:1], values[1:]


def _no_targets(category: Category) -> int:
    success(f"No {category.plural} installed.")
    return 0


def cmd_list(executor: LifecycleExecutor, args: argparse.Namespace) -> int:
    all_targets = getattr(args, "all", False)
    targets = executor.resolve_targets(getattr(args, "targets", []), all_targets=all_targets)
    if not targets:
        return _no_targets(executor.category)

    filters = build_filters(
        {field: getattr(args, f"filter_{field}") for field in FILTER_OPTIONS}
    )
    fields = (
        [name.strip() for name in args.fields.split(",") if name.strip()]
        if args.fields
        else default_fields(executor.category)
    )
    wanted = fields + [args.field] if args.field and args.field not in fields else fields
    records = executor.list_translations(targets, filters)
    rows = [as_row(record, wanted) for record in records]
    display_items(rows, fields, output_format=args.format, field=args.field)
    return 0


def _print_results(args: argparse.Namespace, rows: List[dict]) -> None:
    if args.format != "summary":
        display_items(rows, RESULT_FIELDS, output_format=args.format)


def cmd_install(executor: LifecycleExecutor, args: argparse.Namespace) -> int:
    category = executor.category
    all_targets = getattr(args, "all", False)
    slugs, locales = split_target_args(category, args.args, all_targets=all_targets)
    if not locales:
        raise ArgumentError("Please specify one or more languages.")
    targets = executor.resolve_targets(slugs, all_targets=all_targets)
    if not targets:
        return _no_targets(category)

    activate = getattr(args, "activate", False)
    tally = executor.install(targets, locales, activate=activate)
    _print_results(args, [result.as_row() for result in tally.results])

    if not all_targets and tally.total == 1:
        outcome = tally.results[0].outcome
        if outcome is Outcome.NOT_AVAILABLE:
            error(f"Language '{locales[0]}' not found.")
            return 1
        if outcome is Outcome.ALREADY_INSTALLED and not activate:
            warning(f"Language '{locales[0]}' already installed.")
            return 0
        if outcome is Outcome.INSTALLED and not activate:
            success("Language installed.")
            return 0

    exit_code = report(tally.level, tally.summary("installed"))
    if tally.activated:
        success("Language activated.")
    elif tally.activated is False:
        warning(f"Language '{locales[0]}' already active.")
    return exit_code


def cmd_uninstall(executor: LifecycleExecutor, args: argparse.Namespace) -> int:
    category = executor.category
    all_targets = getattr(args, "all", False)
    slugs, locales = split_target_args(category, args.args, all_targets=all_targets)
    if not locales:
        raise ArgumentError("Please specify one or more languages.")
    targets = executor.resolve_targets(slugs, all_targets=all_targets)
    if not targets:
        return _no_targets(category)

    tally = executor.uninstall(targets, locales, explicit=not all_targets)
    _print_results(args, [result.as_row() for result in tally.results])

    if not all_targets and tally.total == 1 and tally.results[0].outcome is Outcome.NOT_INSTALLED:
        error("Language not installed.")
        return 1
    return report(tally.level, tally.summary("uninstalled"))


def cmd_update(executor: LifecycleExecutor, args: argparse.Namespace) -> int:
    all_targets = getattr(args, "all", False)
    targets = executor.resolve_targets(getattr(args, "targets", []), all_targets=all_targets)
    if not targets:
        return _no_targets(executor.category)

    summary = executor.update(targets, dry_run=args.dry_run)
    if summary.up_to_date:
        success(summary.message())
        return 0

    if summary.dry_run:
        print(f"Available {len(summary.available)} translations updates:")
        rows = [
            {
                "Type": update.category.value.capitalize(),
                "Name": update.name,
                "Version": update.version,
                "Language": update.language_name or update.locale,
            }
            for update in summary.available
        ]
        display_items(rows, UPDATE_FIELDS, output_format="table")
        return 0

    for failure in summary.failures:
        print(f"  - Could not update {failure}")
    return report(summary.level, summary.message())


def cmd_is_installed(executor: LifecycleExecutor, args: argparse.Namespace) -> int:
    values = list(args.args)
    if executor.category is Category.CORE:
        target = executor.resolve_targets([])[0]
        locales = values
    else:
        target = executor.resolve_targets(values[:1])[0]
        locales = values[1:]
    if not locales:
        raise ArgumentError("Please specify one or more languages.")
    return 0 if executor.is_installed(target, locales) else 1


def cmd_activate(executor: LifecycleExecutor, language: str) -> int:
    if not executor.activate(language):
        warning(f"Language '{language}' already active.")
        return 0
    success("Language activated.")
    return 0


def execute_command(
    args: argparse.Namespace,
    workspace: Workspace,
) -> int:
    """Run the parsed command and return the exit code."""

    try:
        if not is_supported_version(workspace.version):
            raise UnsupportedVersionError("Requires version 4.0 or greater.")

        if args.category == "switch-language":
            executor = LifecycleExecutor(Category.CORE, workspace, verbose=args.verbose)
            return cmd_activate(executor, args.language)

        executor = LifecycleExecutor(
            Category(args.category),
            workspace,
            verbose=args.verbose,
        )
        if args.command == "list":
            return cmd_list(executor, args)
        elif args.command == "install":
            return cmd_install(executor, args)
        elif args.command == "uninstall":
            return cmd_uninstall(executor, args)
        elif args.command == "update":
            return cmd_update(executor, args)
        elif args.command == "is-installed":
            return cmd_is_installed(executor, args)
        elif args.command == "activate":
            return cmd_activate(executor, args.language)
        raise ArgumentError(f"Unknown command '{args.command}'.")
    except ActiveLanguageError as exc:
        warning(str(exc))
        return 0
    except LangpackError as exc:
        error(str(exc))
        return 1
    except KeyboardInterrupt:
        error("Interrupted by user.")
        return 2


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        error(str(exc))
        return 1

    configure_logging(bool(args.debug or settings.LANGPACK_DEBUG))

    try:
        workspace = build_workspace(settings)
    except LangpackError as exc:
        error(str(exc))
        return 1
    return execute_command(args, workspace)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
