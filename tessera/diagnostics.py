"""Diagnose why a batch response could not be decoded."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from .protocol import END_PREFIX, START_PREFIX

MARKER_VARIANTS = ("NODE_START_", "@@NODE_", "NODE ", "<NODE", "[NODE", "{NODE")


@dataclass
class BatchDiagnostic:
    """Counts and findings comparing one request with its response."""

    request_length: int
    response_length: int
    request_start_markers: int
    request_end_markers: int
    response_start_markers: int
    response_end_markers: int
    empty_response: bool
    looks_like_json: bool
    variant_counts: Dict[str, int] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)

    @property
    def request_balanced(self) -> bool:
        return self.request_start_markers == self.request_end_markers

    @property
    def response_balanced(self) -> bool:
        return self.response_start_markers == self.response_end_markers

    @property
    def markers_preserved(self) -> bool:
        return self.request_start_markers == self.response_start_markers

    def format(self) -> str:
        lines = [
            "Batch diagnostic",
            f"  Request length:   {self.request_length} chars",
            f"  Response length:  {self.response_length} chars",
            f"  Request markers:  {self.request_start_markers} start / "
            f"{self.request_end_markers} end",
            f"  Response markers: {self.response_start_markers} start / "
            f"{self.response_end_markers} end",
            f"  Markers preserved: {'yes' if self.markers_preserved else 'no'}",
        ]
        if self.variant_counts:
            variants = ", ".join(
                f"{variant!r} x{count}" for variant, count in self.variant_counts.items()
            )
            lines.append(f"  Marker variants in response: {variants}")
        if self.issues:
            lines.append("Probable issues:")
            lines.extend(f"  - {issue}" for issue in self.issues)
        else:
            lines.append("No issues detected.")
        return "\n".join(lines)


def diagnose_batch(request: str, response: str) -> BatchDiagnostic:
    stripped = response.strip()
    diagnostic = BatchDiagnostic(
        request_length=len(request),
        response_length=len(response),
        request_start_markers=request.count(START_PREFIX),
        request_end_markers=request.count(END_PREFIX),
        response_start_markers=response.count(START_PREFIX),
        response_end_markers=response.count(END_PREFIX),
        empty_response=not stripped,
        looks_like_json=stripped.startswith(("{", "[")),
    )
    diagnostic.variant_counts = {
        variant: response.count(variant)
        for variant in MARKER_VARIANTS
        if variant in response
    }

    issues = diagnostic.issues
    if diagnostic.empty_response:
        issues.append("response is empty")
    if diagnostic.looks_like_json:
        issues.append("response looks like JSON; the model ignored the marker format")
    if not diagnostic.request_balanced:
        issues.append(
            f"request markers are unbalanced ({diagnostic.request_start_markers} start, "
            f"{diagnostic.request_end_markers} end)"
        )
    if diagnostic.response_start_markers == 0 and diagnostic.response_end_markers == 0:
        if diagnostic.variant_counts:
            issues.append(
                "response contains no node markers but has marker-like variants: "
                + ", ".join(repr(variant) for variant in diagnostic.variant_counts)
            )
        elif not diagnostic.empty_response:
            issues.append("response contains no node markers")
    elif not diagnostic.response_balanced:
        issues.append(
            f"response markers are unbalanced ({diagnostic.response_start_markers} start, "
            f"{diagnostic.response_end_markers} end)"
        )
    if diagnostic.response_start_markers and not diagnostic.markers_preserved:
        issues.append(
            f"marker count mismatch: request has {diagnostic.request_start_markers} "
            f"nodes, response has {diagnostic.response_start_markers}"
        )
    if stripped and len(response) < len(request) / 2:
        issues.append("response is less than half the request length; output may be truncated")

    return diagnostic
