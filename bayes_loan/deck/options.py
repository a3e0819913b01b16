"""
Deck and chunk option schemas.
"""

from datetime import date, datetime
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import CHUNK_DEFAULTS, DECK_CONFIG


class ChunkOptions(BaseModel):
    """Options of one code chunk, e.g. ```{python fit-model, cache=TRUE}."""

    model_config = ConfigDict(extra="forbid")

    label: str
    eval: bool = CHUNK_DEFAULTS["eval"]
    echo: bool = CHUNK_DEFAULTS["echo"]
    include: bool = CHUNK_DEFAULTS["include"]
    cache: bool = CHUNK_DEFAULTS["cache"]
    error: bool = CHUNK_DEFAULTS["error"]
    results: Literal["markup", "asis", "hide"] = CHUNK_DEFAULTS["results"]
    fig_width: float = Field(CHUNK_DEFAULTS["fig_width"], gt=0)
    fig_height: float = Field(CHUNK_DEFAULTS["fig_height"], gt=0)
    fig_dpi: int = Field(CHUNK_DEFAULTS["fig_dpi"], gt=0)


class DeckOptions(BaseModel):
    """YAML front matter of a deck."""

    model_config = ConfigDict(extra="allow")

    title: str = "Untitled"
    author: Optional[str] = None
    date: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    chunk_defaults: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("date", mode="before")
    @classmethod
    def _expand_date(cls, value):
        if value is None:
            return None
        if isinstance(value, (date, datetime)):
            return value.strftime(DECK_CONFIG["date_format"])
        if str(value).strip().lower() == "today":
            return datetime.now().strftime(DECK_CONFIG["date_format"])
        return str(value)

    @field_validator("chunk_defaults", mode="before")
    @classmethod
    def _normalise_keys(cls, value):
        return {str(k).replace(".", "_"): v for k, v in (value or {}).items()}
