"""
Pydantic models for the chart pack contract and the response envelope.

Rationale:
- ChartPack pins down exactly what the renderer relies on. Unknown fields are
  allowed through untouched; the analyzer may add more than we check.
- validate_chart() turns the first pydantic error into a SchemaViolation that
  names the offending field as a dotted path (e.g. `meta.title`).
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError, field_validator

from .errors import SchemaViolation
from .normalizer import DEFAULT_PROFILE

logger = logging.getLogger(__name__)


class ChartMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: StrictStr

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v


class ChartPack(BaseModel):
    model_config = ConfigDict(extra="allow")

    schemaVersion: Union[StrictInt, StrictStr]
    meta: ChartMeta
    timeline: Dict[str, Any]
    barsFlat: List[Any]
    hitsFlat: List[Any]
    profiles: Dict[str, Any]
    sections: Optional[List[Any]] = None
    repeats: Optional[List[Any]] = None

    @field_validator("schemaVersion")
    @classmethod
    def _version_not_blank(cls, v: Union[int, str]) -> Union[int, str]:
        if isinstance(v, str) and not v.strip():
            raise ValueError("schemaVersion must not be empty")
        return v


class ChartResponse(BaseModel):
    ok: bool
    chart: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def _field_path(chart: Dict[str, Any], loc) -> str:
    # Follow loc only through objects in the data; anything after that is a
    # union member tag such as ("schemaVersion", "int"), not a field.
    parts = []
    node: Any = chart
    for p in loc:
        if not isinstance(node, dict):
            break
        parts.append(str(p))
        node = node.get(p)
    return ".".join(parts) or "$"


def validate_chart(chart: Dict[str, Any]) -> Dict[str, Any]:
    """
    Assert that a normalized chart satisfies the ChartPack contract.

    Returns the chart unchanged. Raises SchemaViolation naming the first
    missing or malformed field; no partially valid chart ever passes.
    """
    try:
        ChartPack.model_validate(chart)
    except ValidationError as e:
        first = e.errors()[0]
        field = _field_path(chart, first["loc"])
        if field == "meta" and not isinstance(chart.get("meta"), dict):
            # no meta object means no title either
            raise SchemaViolation("Generated chart missing meta.title", field="meta.title") from e
        if first["type"] == "missing":
            message = f"Generated chart missing {field}"
        else:
            message = f"Generated chart has invalid {field}: {first['msg']}"
        raise SchemaViolation(message, field=field) from e

    if DEFAULT_PROFILE not in chart["profiles"]:
        logger.warning("Chart has no %r profile (profiles: %s)", DEFAULT_PROFILE, sorted(chart["profiles"]))
    logger.info("Chart validated: %d bars, %d hits", len(chart["barsFlat"]), len(chart["hitsFlat"]))
    return chart
