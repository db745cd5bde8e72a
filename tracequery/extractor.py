"""Recover a StructuredQuery from free-form model output.

Extraction order:
    1. the interior of a fenced ```json block
    2. the greedy span from the first ``{`` to the last ``}``
Anything else, or a span that is not a JSON object, is a ParseError.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from tracequery.errors import ParseError, excerpt
from tracequery.models import StructuredQuery

logger = logging.getLogger("tracequery.extractor")

_FENCED_JSON_RE = re.compile(r"```json\n?([\s\S]*?)\n?```")
_BARE_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def locate_json(text: str) -> str:
    """Return the candidate JSON text inside ``text`` or raise ParseError."""
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        return fenced.group(1)

    bare = _BARE_OBJECT_RE.search(text)
    if bare:
        return bare.group(0)

    raise ParseError("no JSON object found", raw_text=text)


def parse_json_object(text: str) -> dict[str, Any]:
    """Locate and decode the JSON object embedded in ``text``."""
    candidate = locate_json(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(str(e), raw_text=text) from e

    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}", raw_text=text)
    return data


def extract_structured_query(text: str, question: str) -> StructuredQuery:
    """Parse the model reply into a normalized StructuredQuery.

    ``original_question`` always comes from ``question``; whatever the model
    put there is ignored. Malformed field values are dropped, not fatal.
    """
    data = parse_json_object(text)
    logger.debug(f"Extracted JSON keys {sorted(data)} from reply: {excerpt(text, 100)}")

    fields = {
        "service": data.get("service"),
        "operation": data.get("operation"),
        "minDuration": data.get("minDuration"),
        "maxDuration": data.get("maxDuration"),
        "tags": data.get("tags"),
        "status": data.get("status"),
        "originalQuestion": question,
    }
    return StructuredQuery.model_validate(fields)
