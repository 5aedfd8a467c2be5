"""Concurrent dispatch of node groups to a translation provider."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .cache import TranslationCache, make_cache_key
from .diagnostics import diagnose_batch
from .errors import (
    ErrorCategory,
    MarkersNotFoundError,
    NodeTranslationMissingError,
    SimilarityCheckError,
    TranslationCancelled,
    TranslationProviderError,
    classify_error,
)
from .progress import ProgressTracker
from .protection import ContentProtector
from .protocol import MARKER_TOKEN, decode_response, encode_group, node_payload
from .providers import TranslationProvider
from .similarity import SimilarityChecker
from .stats import RequestResult, StatsRecorder
from .structures import Group

logger = logging.getLogger(__name__)


@dataclass
class GroupError:
    """A group whose request failed as a whole, or was never sent."""

    group_id: int
    node_ids: List[int]
    error: Exception
    error_type: str = field(init=False)
    cancelled: bool = False

    def __post_init__(self) -> None:
        self.error_type = classify_error(self.error)


@dataclass
class _GroupOutcome:
    succeeded: int = 0
    failed: int = 0
    similarity_failures: int = 0
    first_error: Optional[Exception] = None


class ConcurrentDispatcher:
    """Sends each group in one provider call and writes results onto its nodes.

    Only translatable members are updated; context members are read but never
    mutated. Every call to :meth:`dispatch` runs its own worker pool and
    returns once all groups have finished.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        source_language: Optional[str],
        target_language: str,
        concurrency: int = 4,
        similarity: Optional[SimilarityChecker] = None,
        cache: Optional[TranslationCache] = None,
        stats: Optional[StatsRecorder] = None,
        progress: Optional[ProgressTracker] = None,
        model: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.source_language = source_language
        self.target_language = target_language
        self.concurrency = max(1, concurrency)
        self.similarity = similarity
        self.cache = cache
        self.stats = stats
        self.progress = progress
        self.model = model or getattr(provider, "model", None)

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", None) or type(self.provider).__name__

    def dispatch(
        self,
        groups: Sequence[Group],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[GroupError]:
        if not groups:
            return []
        if cancel_event is None:
            cancel_event = threading.Event()

        errors: List[GroupError] = []
        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="tessera-group",
        ) as executor:
            futures = {
                executor.submit(self._run_group, group, cancel_event): group
                for group in groups
            }
            try:
                for future in as_completed(futures):
                    try:
                        error = future.result()
                    except Exception as exc:
                        error = self._abandon_group(futures[future], exc)
                    if error is not None:
                        errors.append(error)
            except KeyboardInterrupt:
                cancel_event.set()
                executor.shutdown(wait=False, cancel_futures=True)
                raise

        errors.sort(key=lambda item: item.group_id)
        return errors

    def _run_group(
        self,
        group: Group,
        cancel_event: Optional[threading.Event],
    ) -> Optional[GroupError]:
        if cancel_event is not None and cancel_event.is_set():
            logger.debug("Group %d not sent: run cancelled", group.group_id)
            return GroupError(
                group_id=group.group_id,
                node_ids=group.node_ids,
                error=TranslationCancelled("run cancelled before the group was sent"),
                cancelled=True,
            )
        if not group.needs_translation:
            return None

        protector = ContentProtector()
        protector.reserve(node_payload(node) for node in group.nodes)
        request = encode_group(group, transform=protector.protect)
        started = time.monotonic()

        cache_key: Optional[str] = None
        response: Optional[str] = None
        if self.cache is not None:
            cache_key = make_cache_key(
                request, self.source_language, self.target_language, self.model
            )
            response = self._cache_get(cache_key)
        cached = response is not None

        if response is None:
            metadata: Dict[str, Any] = {
                "is_batch": True,
                "node_count": len(group.translatable_nodes),
                "group_id": group.group_id,
                "cancel_event": cancel_event,
            }
            try:
                response = self.provider.translate(
                    request,
                    source_language=self.source_language,
                    target_language=self.target_language,
                    metadata=metadata,
                )
            except TranslationCancelled as exc:
                logger.debug("Group %d cancelled in flight", group.group_id)
                return GroupError(
                    group_id=group.group_id,
                    node_ids=group.node_ids,
                    error=exc,
                    cancelled=True,
                )
            except Exception as exc:
                return self._fail_group(group, exc, request, started)

        latency = time.monotonic() - started

        if not isinstance(response, str):
            return self._fail_group(
                group,
                TranslationProviderError(
                    f"invalid response: provider returned {type(response).__name__}",
                    category=ErrorCategory.INVALID_RESPONSE,
                ),
                request,
                started,
            )

        if MARKER_TOKEN.search(response) is None:
            logger.debug(
                "Group %d response carried no markers\n%s",
                group.group_id,
                diagnose_batch(request, response).format(),
            )
            return self._fail_group(
                group, MarkersNotFoundError(), request, started, response=response
            )

        outcome = self._apply_response(group, protector, response)

        if cache_key is not None and not cached and outcome.failed == 0:
            self._cache_set(cache_key, response)

        self._record(
            group,
            RequestResult(
                success=outcome.failed == 0,
                latency_seconds=latency,
                input_chars=len(request),
                output_chars=len(response),
                node_count=len(group.translatable_nodes),
                failed_nodes=outcome.failed,
                similarity_failures=outcome.similarity_failures,
                error_type=(
                    classify_error(outcome.first_error)
                    if outcome.first_error is not None
                    else None
                ),
                cached=cached,
            ),
            succeeded=outcome.succeeded,
            failed=outcome.failed,
        )
        logger.debug(
            "Group %d done: %d ok, %d failed%s",
            group.group_id,
            outcome.succeeded,
            outcome.failed,
            " (cached)" if cached else "",
        )
        return None

    def _apply_response(
        self,
        group: Group,
        protector: ContentProtector,
        response: str,
    ) -> _GroupOutcome:
        translations = decode_response(response)

        missing_tokens = protector.missing_tokens(response)
        if missing_tokens:
            logger.warning(
                "Group %d response dropped %d preserved span(s): %s",
                group.group_id,
                len(missing_tokens),
                ", ".join(missing_tokens),
            )

        outcome = _GroupOutcome()
        for node in group.translatable_nodes:
            translated = translations.get(node.node_id)
            error: Optional[Exception] = None
            if not translated:
                error = NodeTranslationMissingError(node.node_id)
            else:
                translated = protector.restore_all(translated)
                if self.similarity is not None and self.similarity.is_too_similar(
                    node.original_text, translated
                ):
                    error = SimilarityCheckError(
                        self.similarity.similarity(node.original_text, translated),
                        self.similarity.threshold,
                    )
                    outcome.similarity_failures += 1

            if error is None:
                node.mark_success(translated)  # type: ignore[arg-type]
                outcome.succeeded += 1
                continue

            node.mark_failed(error)
            outcome.failed += 1
            if outcome.first_error is None:
                outcome.first_error = error
            logger.debug("Node %d failed: %s", node.node_id, error)

        return outcome

    def _fail_group(
        self,
        group: Group,
        error: Exception,
        request: str,
        started: float,
        *,
        response: str = "",
    ) -> GroupError:
        members = group.translatable_nodes
        for node in members:
            node.mark_failed(error)

        group_error = GroupError(
            group_id=group.group_id,
            node_ids=[node.node_id for node in members],
            error=error,
        )
        logger.warning(
            "Group %d failed (%s, %d nodes): %s",
            group.group_id,
            group_error.error_type,
            len(members),
            error,
        )
        self._record(
            group,
            RequestResult(
                success=False,
                latency_seconds=time.monotonic() - started,
                input_chars=len(request),
                output_chars=len(response),
                node_count=len(members),
                failed_nodes=len(members),
                error_type=group_error.error_type,
            ),
            succeeded=0,
            failed=len(members),
        )
        return group_error

    def _cache_get(self, key: str) -> Optional[str]:
        try:
            return self.cache.get(key)  # type: ignore[union-attr]
        except (OSError, ValueError) as exc:
            logger.warning("Cache lookup failed, sending the group: %s", exc)
            return None

    def _cache_set(self, key: str, response: str) -> None:
        try:
            self.cache.set(key, response)  # type: ignore[union-attr]
        except OSError as exc:
            logger.warning("Could not cache group response: %s", exc)

    def _abandon_group(self, group: Group, error: Exception) -> GroupError:
        """Fail the unresolved members of a group whose worker raised."""

        members = [node for node in group.translatable_nodes if not node.is_resolved]
        for node in members:
            node.mark_failed(error)
        logger.error(
            "Group %d aborted by unexpected error: %s", group.group_id, error, exc_info=error
        )
        return GroupError(
            group_id=group.group_id,
            node_ids=[node.node_id for node in members],
            error=error,
        )

    def _record(
        self,
        group: Group,
        result: RequestResult,
        *,
        succeeded: int,
        failed: int,
    ) -> None:
        if self.stats is not None:
            self.stats.record_request(self.provider_name, self.model, result)
        if self.progress is not None:
            chars = sum(node.size for node in group.translatable_nodes)
            self.progress.record_group(succeeded, failed, chars)
