"""Compile a StructuredQuery into the filter set consumed by trace search."""

from __future__ import annotations

from tracequery.models import FilterSet, QueryStatus, StructuredQuery

STATUS_MARKERS: dict[QueryStatus, str] = {
    QueryStatus.ERROR: 'otel.status_code="ERROR"',
    QueryStatus.SUCCESS: 'otel.status_code="OK"',
}


def render_tags(tags: dict[str, str]) -> str:
    """Render tags as space-joined ``key="value"`` pairs in mapping order."""
    return " ".join(f'{key}="{value}"' for key, value in tags.items())


def compile_filters(query: StructuredQuery) -> FilterSet:
    """Pure mapping StructuredQuery -> FilterSet.

    Keys appear in a fixed order (service, operation, minDuration,
    maxDuration, tags) and absent fields are omitted. The status marker is
    appended after any explicit tags.
    """
    filters: FilterSet = {}

    if query.service:
        filters["service"] = query.service
    if query.operation:
        filters["operation"] = query.operation
    if query.min_duration:
        filters["minDuration"] = query.min_duration
    if query.max_duration:
        filters["maxDuration"] = query.max_duration

    tag_parts: list[str] = []
    if query.tags:
        tag_parts.append(render_tags(query.tags))
    marker = STATUS_MARKERS.get(query.status)
    if marker:
        tag_parts.append(marker)
    if tag_parts:
        filters["tags"] = " ".join(tag_parts)

    return filters
