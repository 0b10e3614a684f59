"""Structural detector output: detected tables and section headings.

The three table shapes form a tagged union discriminated on ``kind`` so
shape-specific fields (e.g. ``dice_type``) stay type-safe without an
inheritance hierarchy.  All shapes expose the same ``columns``/``rows``
pair so downstream code can treat them uniformly.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from rules_index.models.rules import Confidence


class _TableRegion(BaseModel):
    """Fields shared by every detected table shape."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    header_context: str | None = None
    page_number: int | None = None
    # Line span within the scanned text, end exclusive.
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, str]] = Field(default_factory=list)
    raw_text: str = ""
    confidence: Confidence = Confidence.LOW


class DiceRollTable(_TableRegion):
    """Consecutive roll-range rows such as ``1-2 Broken Arm``."""

    kind: Literal["dice_roll"] = "dice_roll"
    # "d6", "d66", "2d6", "d{n}" or None when nothing could be inferred.
    dice_type: str | None = None


class PipeTable(_TableRegion):
    """A markdown-style ``| a | b |`` table with a dash/colon separator row."""

    kind: Literal["pipe"] = "pipe"


class WhitespaceTable(_TableRegion):
    """Columns aligned by runs of spaces or tabs, with no delimiter."""

    kind: Literal["whitespace"] = "whitespace"


DetectedTable = Annotated[
    Union[DiceRollTable, PipeTable, WhitespaceTable],  # noqa: UP007
    Field(discriminator="kind"),
]


class DetectedHeading(BaseModel):
    """A heading-shaped line with its nesting level and ancestor path."""

    model_config = ConfigDict(frozen=True)

    title: str
    level: int = Field(ge=1)
    page_number: int | None = None
    line_index: int = Field(default=0, ge=0)
    # Ancestor titles followed by this heading's own title.
    path: list[str] = Field(default_factory=list)


class DetectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tables: list[DetectedTable] = Field(default_factory=list)
    headings: list[DetectedHeading] = Field(default_factory=list)
