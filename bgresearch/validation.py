"""
bgresearch.validation — The schema-checked request boundary.

Nothing past this module probes the shape of a request body. Every way a
payload can fail to carry a query (missing key, wrong type, blank string,
not even a mapping) raises the same ``QueryValidationError`` so the client
always gets the same 400.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as PydanticValidationError

from bgresearch.core.errors import QueryValidationError
from bgresearch.core.models import Query


class AnalyzeRequest(BaseModel):
    """Body of ``POST /analyze``. Unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    query: StrictStr


def validate(raw_body: Any) -> Query:
    """Return the trimmed ``Query`` carried by *raw_body*, or raise."""
    if not isinstance(raw_body, dict):
        raise QueryValidationError(field="query")

    try:
        request = AnalyzeRequest.model_validate(raw_body)
    except PydanticValidationError as exc:
        raise QueryValidationError(field="query") from exc

    text = request.query.strip()
    if not text:
        raise QueryValidationError(field="query")
    return Query(text=text)
