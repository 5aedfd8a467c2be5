"""High-level orchestration for batch translation."""

from __future__ import annotations

import logging
import pathlib
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .cache import CacheStats, TranslationCache
from .configuration import TranslatorSettings
from .dispatcher import ConcurrentDispatcher
from .documents import detect_handler
from .errors import OverwriteRefusedError, TesseraError
from .grouping import NodeGrouper
from .progress import ProgressTracker
from .providers import TranslationProvider
from .retry import FailedNodeDetail, RetryCoordinator, RetrySummary
from .similarity import SimilarityChecker
from .stats import ProviderStats, StatsRecorder
from .structures import Node

logger = logging.getLogger(__name__)


@dataclass
class TranslationReport:
    """Report returned after translating a set of nodes."""

    summary: RetrySummary
    provider_name: str
    model: str | None
    target_language: str
    source_language: str | None
    elapsed_seconds: float
    cache_stats: CacheStats | None = None
    provider_stats: Dict[str, ProviderStats] = field(default_factory=dict)
    input_path: pathlib.Path | None = None
    output_path: pathlib.Path | None = None
    document_type: str | None = None

    @property
    def error_type_counts(self) -> Dict[str, int]:
        return self.summary.error_type_counts

    @property
    def has_failures(self) -> bool:
        return self.summary.final_failed > 0

    def failed_preview(self, limit: int = 10, width: int = 80) -> List[str]:
        """One line per unresolved node, text truncated to ``width``."""

        lines: List[str] = []
        for detail in self.summary.final_failed_nodes[:limit]:
            lines.append(_preview_line(detail, width))
        remaining = len(self.summary.final_failed_nodes) - limit
        if remaining > 0:
            lines.append(f"... and {remaining} more")
        return lines


def _preview_line(detail: FailedNodeDetail, width: int) -> str:
    text = " ".join(detail.original_text.split())
    if len(text) > width:
        text = text[: max(0, width - 3)] + "..."
    location = f" at {detail.path}" if detail.path else ""
    return (
        f"node {detail.node_id}{location} [{detail.error_type}, "
        f"{detail.retry_count} retries]: {text}"
    )


class BatchTranslator:
    """Coordinates grouping, dispatch, and retries for a list of nodes."""

    def __init__(
        self,
        provider: TranslationProvider,
        settings: TranslatorSettings,
        *,
        cache: Optional[TranslationCache] = None,
        stats: Optional[StatsRecorder] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.cache = cache
        self.stats = stats
        self.progress = progress

        similarity = None
        if settings.similarity_check:
            similarity = SimilarityChecker(
                settings.similarity_threshold,
                source_language=settings.source_language,
                target_language=settings.target_language,
            )

        self.grouper = NodeGrouper(settings.chunk_size)
        self.dispatcher = ConcurrentDispatcher(
            provider,
            source_language=settings.source_language,
            target_language=settings.target_language,
            concurrency=settings.concurrency,
            similarity=similarity,
            cache=cache,
            stats=stats,
            progress=progress,
            model=settings.model,
        )
        self.coordinator = RetryCoordinator(
            self.grouper,
            self.dispatcher,
            max_retries=settings.max_retries,
            context_distance=settings.context_distance,
        )

    @property
    def provider_name(self) -> str:
        return self.dispatcher.provider_name

    def translate_nodes(
        self,
        nodes: Sequence[Node],
        cancel_event: Optional[threading.Event] = None,
    ) -> TranslationReport:
        """Translate ``nodes`` in place and block until every round is done."""

        start_time = time.time()
        if self.progress is not None:
            self.progress.set_total_nodes(len(nodes))

        summary = self.coordinator.run(nodes, cancel_event)

        return TranslationReport(
            summary=summary,
            provider_name=self.provider_name,
            model=self.dispatcher.model,
            target_language=self.settings.target_language,
            source_language=self.settings.source_language,
            elapsed_seconds=time.time() - start_time,
            cache_stats=self.cache.stats() if self.cache is not None else None,
            provider_stats=self.stats.snapshot() if self.stats is not None else {},
        )

    def translate_document(
        self,
        input_path: pathlib.Path,
        output_path: pathlib.Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> TranslationReport:
        """Extract nodes, translate them, and write the rendered document."""

        document_type, handler = detect_handler(input_path)
        nodes = handler.extract_nodes()
        logger.info("Extracted %d nodes from %s", len(nodes), input_path.name)

        report = self.translate_nodes(nodes, cancel_event)
        handler.save(output_path)

        report.input_path = input_path
        report.output_path = output_path
        report.document_type = document_type
        return report


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .txt or .md file."
        )
    if not input_path.is_file():
        raise TesseraError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )


def format_report(report: TranslationReport) -> str:
    """Render a human-readable report once processing completes."""

    summary = report.summary
    headline = (
        "Translation finished with unresolved nodes."
        if report.has_failures
        else "Translation complete."
    )
    lines = ["", headline]
    if report.input_path is not None:
        lines.append(f"  Input file:      {report.input_path}")
    if report.output_path is not None:
        lines.append(f"  Output file:     {report.output_path}")
    if report.document_type:
        lines.append(f"  Document type:   {report.document_type}")
    lines.append(
        "  Nodes:           "
        f"{summary.final_success} translated / {summary.total_nodes} total "
        f"({summary.final_skipped} skipped, {summary.final_failed} failed)"
    )
    lines.append(f"  Rounds:          {summary.total_rounds}")
    for round_result in summary.rounds:
        lines.append(
            f"    {round_result.round_number}. {round_result.round_type}: "
            f"{round_result.success_nodes}/{round_result.total_nodes} ok "
            f"in {round_result.group_count} groups ({round_result.duration:.2f}s)"
        )
    lines.append(
        f"  Provider:        {report.provider_name}"
        + (f" ({report.model})" if report.model else "")
    )
    if report.source_language:
        lines.append(f"  Source language: {report.source_language}")
    lines.append(f"  Target language: {report.target_language}")
    lines.append(f"  Elapsed time:    {report.elapsed_seconds:.2f} seconds")
    if report.cache_stats is not None:
        cache = report.cache_stats
        lines.append(
            f"  Cache:           {cache.hits} hits, {cache.misses} misses "
            f"({cache.hit_ratio:.0%})"
        )
    for key, stats in report.provider_stats.items():
        metrics = stats.metrics()
        lines.append(
            f"  Requests ({key}): {stats.total_requests}, "
            f"{metrics['success_rate']:.1f}% ok, "
            f"avg {metrics['average_latency_seconds']:.2f}s"
        )
    if summary.cancelled:
        lines.append("  Run was cancelled before all rounds finished.")
    if report.has_failures:
        counts = ", ".join(
            f"{error_type}: {count}"
            for error_type, count in sorted(report.error_type_counts.items())
        )
        lines.append(f"  Errors:          {counts}")
        lines.append("  Unresolved nodes (original text kept):")
        lines.extend(f"    - {line}" for line in report.failed_preview())
    return "\n".join(lines)
