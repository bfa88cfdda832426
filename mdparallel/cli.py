"""Command line interface for the mdparallel translator."""

from __future__ import annotations

import argparse
import pathlib
import sys
from typing import Callable, Dict, Iterable, Optional

from .configuration import MdParallelConfig, get_settings
from .errors import ConfigurationError, MdParallelError
from .glossary import clean_entries, entries_from_mapping, read_tsv_entries
from .languages import source_code, target_code
from .log import configure_logging
from .policy import RetryPolicy
from .providers import TranslationProvider, build_provider
from .runner import RunController, RunOptions, RunResult, RunState
from .structures import Formality

EXIT_CODES = {
    RunState.COMPLETED: 0,
    RunState.ABORTED: 1,
    RunState.CANCELLED: 2,
}


def _argument_type(convert: Callable[[str], object]) -> Callable[[str], object]:
    """Turn ``ValueError`` from a converter into an argparse usage error."""

    def parse(value: str) -> object:
        try:
            return convert(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    parse.__name__ = convert.__name__
    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdparallel",
        description=(
            "Translate Markdown documents into side-by-side bilingual Markdown."
        ),
    )
    parser.add_argument(
        "-c",
        "--config-dir",
        help="Directory holding mdparallel.yaml and .env (default: current directory).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    translate = commands.add_parser(
        "translate", help="Translate a Markdown file or a directory tree."
    )
    translate.add_argument(
        "-f",
        "--from",
        dest="source_lang",
        required=True,
        type=_argument_type(source_code),
        help="Source language (ISO-639 code).",
    )
    translate.add_argument(
        "-t",
        "--to",
        dest="target_lang",
        required=True,
        type=_argument_type(target_code),
        help="Target language (ISO-639 code, optionally with region).",
    )
    translate.add_argument(
        "--formality",
        type=_argument_type(Formality.parse),
        help="default, formal, or informal (ignored where unsupported).",
    )
    translate.add_argument(
        "--max-depth",
        type=int,
        help="How many directory levels below the input to visit (default: 0).",
    )
    translate.add_argument(
        "--concurrency",
        type=int,
        help="Number of files translated in parallel (default: 1).",
    )
    translate.add_argument(
        "-p",
        "--provider",
        help="Translation provider: deepl, openai, or echo.",
    )
    translate.add_argument(
        "--glossary",
        help="Logical glossary name (default: GLOSSARY_NAME). Use '' to disable.",
    )
    translate.add_argument(
        "--force",
        action="store_true",
        help="Allow overwriting output files that already exist.",
    )
    translate.add_argument("input", help="Markdown file or directory to translate.")
    translate.add_argument("output", help="Output file or directory.")

    glossary = commands.add_parser("glossary", help="Manage remote glossaries.")
    glossary_commands = glossary.add_subparsers(dest="glossary_command", required=True)
    register = glossary_commands.add_parser(
        "register", help="Create a glossary from a TSV file or the GLOSSARIES setting."
    )
    register.add_argument("-n", "--name", required=True, help="Logical glossary name.")
    register.add_argument(
        "-f", "--from", dest="source_lang", required=True, type=_argument_type(source_code)
    )
    register.add_argument(
        "-t", "--to", dest="target_lang", required=True, type=_argument_type(source_code)
    )
    register.add_argument(
        "tsv",
        nargs="?",
        help="File with one 'source<TAB>target' entry per line.",
    )
    glossary_commands.add_parser("list", help="List registered glossaries.")
    delete = glossary_commands.add_parser("delete", help="Delete a glossary by id.")
    delete.add_argument("glossary_id")

    commands.add_parser("usage", help="Show characters used in this billing period.")
    return parser


def _provider_for(
    args: argparse.Namespace, settings: MdParallelConfig, provider_debug: bool
) -> TranslationProvider:
    name = getattr(args, "provider", None) or settings.TRANSLATION_PROVIDER
    return build_provider(name, settings=settings, debug=provider_debug)


def execute_translation(
    args: argparse.Namespace,
    settings: MdParallelConfig,
    *,
    provider_debug: bool = False,
    provider: Optional[TranslationProvider] = None,
) -> tuple[int, RunResult | None, str | None]:
    """Execute a translation run and return the exit code, result, and message."""

    try:
        provider = provider or _provider_for(args, settings, provider_debug)
    except ConfigurationError as exc:
        return 1, None, str(exc)

    glossary_name = settings.GLOSSARY_NAME if args.glossary is None else args.glossary
    options = RunOptions(
        source_lang=args.source_lang,
        target_lang=args.target_lang,
        formality=args.formality,
        glossary_name=glossary_name or None,
        ignore_terms=tuple((settings.IGNORE_TERMS or {}).get(glossary_name or "", ())),
        max_depth=settings.MAX_DEPTH if args.max_depth is None else args.max_depth,
        concurrency=settings.CONCURRENCY if args.concurrency is None else args.concurrency,
        force_overwrite=args.force,
        batch_characters=settings.BATCH_CHARACTERS,
        batch_texts=settings.BATCH_TEXTS,
        retry_policy=RetryPolicy(
            max_retries=settings.MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
        ),
    )
    controller = RunController(
        input_path=pathlib.Path(args.input).expanduser(),
        output_path=pathlib.Path(args.output).expanduser(),
        provider=provider,
        options=options,
    )
    result = controller.run()

    message = None
    if result.state is RunState.ABORTED and result.abort_reason:
        message = f"Run aborted: {result.abort_reason.describe()}"
    elif result.state is RunState.CANCELLED:
        message = "Translation interrupted; files in progress were completed."
    return EXIT_CODES[result.state], result, message


def print_summary(result: RunResult) -> None:
    """Output a friendly report once processing completes."""

    print(f"\nTranslation {result.state.value}.")
    print(f"  Files done:      {len(result.done)}")
    print(f"  Files failed:    {len(result.failed)}")
    print(f"  Characters sent: {result.characters}")
    print(f"  Elapsed time:    {result.elapsed_seconds:.2f} seconds")
    if result.failed:
        print("  Failed files:")
        for outcome in result.failed:
            kind = outcome.error.category.name if outcome.error else "UNKNOWN"
            reason = outcome.error.message if outcome.error else ""
            print(f"    - {outcome.input_path} [{kind}] {reason}")
    if result.warnings:
        print("  Warnings:")
        for record in result.warnings:
            print(f"    - {record.describe()}")


def register_glossary(
    args: argparse.Namespace, settings: MdParallelConfig, provider: TranslationProvider
) -> int:
    if args.tsv:
        entries = clean_entries(read_tsv_entries(pathlib.Path(args.tsv)))
    else:
        configured = (settings.GLOSSARIES or {}).get(args.name)
        if configured is None:
            print(f"No TSV file given and no GLOSSARIES entry named '{args.name}'.")
            return 1
        entries = entries_from_mapping(configured)
    if not entries:
        print("The glossary has no usable entries.")
        return 1

    record = provider.create_glossary(
        args.name, args.source_lang, args.target_lang, entries
    )
    print(
        f"Registered glossary '{record.name}' ({record.source_lang}->"
        f"{record.target_lang}, {record.entry_count or len(entries)} entries): "
        f"{record.glossary_id}"
    )
    return 0


def list_glossaries(
    args: argparse.Namespace, settings: MdParallelConfig, provider: TranslationProvider
) -> int:
    glossaries = provider.list_glossaries()
    if not glossaries:
        print("No glossaries registered.")
        return 0
    for record in glossaries:
        state = "ready" if record.ready else "pending"
        print(
            f"{record.glossary_id}  {record.name}  {record.source_lang}->"
            f"{record.target_lang}  {record.entry_count} entries  {state}"
            + (f"  {record.creation_time}" if record.creation_time else "")
        )
    return 0


def delete_glossary(
    args: argparse.Namespace, settings: MdParallelConfig, provider: TranslationProvider
) -> int:
    provider.delete_glossary(args.glossary_id)
    print(f"Deleted glossary {args.glossary_id}.")
    return 0


def show_usage(
    args: argparse.Namespace, settings: MdParallelConfig, provider: TranslationProvider
) -> int:
    usage = provider.get_usage()
    if usage is None:
        print("The provider does not report usage.")
        return 0
    limit = usage.character_limit if usage.character_limit is not None else "unlimited"
    print(f"Characters used: {usage.character_count} of {limit}")
    return 0


SERVICE_COMMANDS: Dict[str, Callable[..., int]] = {
    "register": register_glossary,
    "list": list_glossaries,
    "delete": delete_glossary,
    "usage": show_usage,
}


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    config_dir = pathlib.Path(args.config_dir).expanduser() if args.config_dir else None
    try:
        settings = get_settings(config_dir)
    except ConfigurationError as exc:
        print(exc)
        return 1

    provider_debug = bool(args.debug_provider or settings.MDPARALLEL_PROVIDER_DEBUG)
    configure_logging(verbose=args.verbose, debug=provider_debug)

    if args.command == "translate":
        exit_code, result, message = execute_translation(
            args, settings, provider_debug=provider_debug
        )
        if message:
            print(message)
        if result:
            print_summary(result)
        return exit_code

    command = args.glossary_command if args.command == "glossary" else args.command
    try:
        provider = _provider_for(args, settings, provider_debug)
        return SERVICE_COMMANDS[command](args, settings, provider)
    except MdParallelError as exc:
        print(exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
