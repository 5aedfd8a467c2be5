"""Command line interface for the Tessera translator."""

from __future__ import annotations

import argparse
import logging
import pathlib
import re
import signal
import sys
import threading
from typing import Iterable, Optional

from .cache import FileCache, MemoryCache, TranslationCache
from .configuration import (
    TranslatorSettings,
    get_settings,
    normalise_provider_name,
    validate_provider_settings,
)
from .diagnostics import diagnose_batch
from .errors import (
    OverwriteRefusedError,
    TesseraError,
    TranslationProviderConfigurationError,
    UnsupportedFileTypeError,
)
from .progress import ProgressTracker
from .providers import build_provider
from .stats import StatsRecorder
from .translator import BatchTranslator, TranslationReport, format_report, validate_paths

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 2
EXIT_UNRESOLVED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tessera",
        description=(
            "Translate text and Markdown documents in batches while preserving code, "
            "math, and links."
        ),
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the .txt or .md file to translate.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language (name or ISO-639 code).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Optional source language hint (name or ISO-639 code).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier (openai, azure_openai, legacy, echo).",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "-b",
        "--chunk-size",
        type=int,
        help="Maximum characters per translation batch (default: 1000).",
    )
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        help="Number of batches translated in parallel (default: 4).",
    )
    parser.add_argument(
        "-r",
        "--max-retries",
        type=int,
        help="Retry rounds for failed nodes (default: 3).",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "--no-similarity-check",
        action="store_true",
        help="Accept translations that are nearly identical to the source text.",
    )
    parser.add_argument(
        "--cache-dir",
        help="Directory for a persistent response cache (default: in-memory only).",
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
    parser.add_argument(
        "--diagnose",
        nargs=2,
        metavar=("REQUEST", "RESPONSE"),
        help="Compare a saved batch request with its response and report marker problems.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    suffix = input_path.suffix
    stem = input_path.stem
    addition = sanitise_language_for_filename(language)
    candidate = f"{stem}_{addition}{suffix}"
    return input_path.with_name(candidate)


def run_diagnosis(request_file: str, response_file: str) -> tuple[int, str]:
    try:
        request = pathlib.Path(request_file).expanduser().read_text(encoding="utf-8")
        response = pathlib.Path(response_file).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        return EXIT_ERROR, f"Could not read diagnostic input: {exc}"
    diagnostic = diagnose_batch(request, response)
    return (EXIT_ERROR if diagnostic.issues else EXIT_OK), diagnostic.format()


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    settings: TranslatorSettings,
    provider: str | None,
    force_overwrite: bool,
    provider_debug: bool,
    cache_dir: str | None = None,
    timeout: float | None = None,
    config: object = None,
    cancel_event: threading.Event | None = None,
) -> tuple[int, TranslationReport | None, str | None]:
    """Execute a translation run and return the exit code, report, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, settings.target_language)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except FileNotFoundError as exc:
        return EXIT_ERROR, None, str(exc)
    except OverwriteRefusedError as exc:
        return EXIT_ERROR, None, str(exc)
    except TesseraError as exc:
        return EXIT_ERROR, None, str(exc)

    output_path.parent.mkdir(parents=True, exist_ok=True)

    cache: TranslationCache = MemoryCache()
    if cache_dir:
        try:
            cache = FileCache(pathlib.Path(cache_dir))
        except OSError as exc:
            logger.warning("Cache directory %s unusable, caching in memory: %s", cache_dir, exc)
    cancel_event = cancel_event or threading.Event()

    try:
        translation_provider = build_provider(
            provider,
            debug=provider_debug,
            model=settings.model,
            timeout=timeout,
            settings=config,
        )
        translator = BatchTranslator(
            translation_provider,
            settings,
            cache=cache,
            stats=StatsRecorder(),
            progress=ProgressTracker(),
        )
        report = translator.translate_document(input_path, output_path, cancel_event)
    except UnsupportedFileTypeError as exc:
        return EXIT_ERROR, None, str(exc)
    except TranslationProviderConfigurationError as exc:
        return EXIT_ERROR, None, str(exc)
    except TesseraError as exc:
        return EXIT_ERROR, None, str(exc)
    except KeyboardInterrupt:
        cancel_event.set()
        return EXIT_INTERRUPTED, None, "Translation interrupted by user."

    if report.summary.cancelled:
        return EXIT_INTERRUPTED, report, "Translation cancelled before all nodes were processed."
    if report.has_failures:
        return (
            EXIT_UNRESOLVED,
            report,
            f"{report.summary.final_failed} node(s) kept their original text.",
        )
    return EXIT_OK, report, None


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.diagnose:
        exit_code, message = run_diagnosis(*args.diagnose)
        print(message)
        return exit_code

    if args.input_file is None:
        parser.error("the following arguments are required: input_file")

    try:
        config = get_settings()
        provider_name = normalise_provider_name(args.provider or config.LLM_PROVIDER)
        validate_provider_settings(config, provider_name)
        settings = TranslatorSettings.from_config(
            config,
            target_language=args.target_language,
            source_language=args.source_language,
            model=args.model,
            chunk_size=args.chunk_size,
            concurrency=args.concurrency,
            max_retries=args.max_retries,
            similarity_check=False if args.no_similarity_check else None,
        )
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return EXIT_ERROR

    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda _signum, _frame: cancel_event.set())
    try:
        exit_code, report, message = execute_translation(
            input_file=args.input_file,
            output_file=args.output,
            settings=settings,
            provider=args.provider or config.LLM_PROVIDER,
            force_overwrite=args.force,
            provider_debug=bool(args.debug_provider or config.TESSERA_PROVIDER_DEBUG),
            cache_dir=args.cache_dir or config.TESSERA_CACHE_DIR,
            timeout=config.TESSERA_REQUEST_TIMEOUT,
            config=config,
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if message:
        print(message)
    if report:
        print(format_report(report))
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
