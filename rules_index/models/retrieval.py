"""Search results and automated data-source binding results."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HitKind = Literal["section", "chunk", "table", "dataset"]


class SearchHit(BaseModel):
    """One ranked keyword-search result."""

    model_config = ConfigDict(frozen=True)

    kind: HitKind
    source_id: str
    item_id: str
    title: str = ""
    snippet: str = ""
    page_number: int | None = None
    score: int = Field(ge=0)


class DataSourceMatch(BaseModel):
    """The data source chosen to back a request such as "injury table widget".

    A dataset beats a table, which beats free-text chunks.  For ``chunks``
    matches ``item_ids`` lists the best chunks in rank order.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["dataset", "table", "chunks"]
    source_id: str
    item_ids: list[str] = Field(default_factory=list)
    title: str = ""
    score: int = Field(ge=0)
    terms: list[str] = Field(default_factory=list)
