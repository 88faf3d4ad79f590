"""Per-call render options and the data contract consumed from the query layer."""
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from models.design import DocumentDesign
from utils.i18n import DEFAULT_LOCALE, locale_direction


class GroupSpec(BaseModel):
    """One grouping level computed by the query layer.

    ``aggregates`` maps a group value (as text, or the "outer/inner" path of
    values for nested levels) to its pre-computed aggregates,
    e.g. ``{"North": {"total": 1200, "count": 4}}``.
    """
    level: int = Field(ge=1)
    key: list[str] = Field(min_length=1)
    aggregates: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("key", mode="before")
    @classmethod
    def key_as_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.split(".")
        return v


class RenderData(BaseModel):
    """Already-materialized report data: records, computed variables, group descriptors."""
    records: list[dict[str, Any]] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    groups: list[GroupSpec] = Field(default_factory=list)

    def context_for(self, record: dict[str, Any] | None = None) -> dict[str, Any]:
        """Interpolation context: variables, overlaid by the record's own keys."""
        merged = dict(self.variables)
        if record is not None:
            merged.update(record)
        return merged

    def ordered_groups(self) -> list[GroupSpec]:
        return sorted(self.groups, key=lambda g: g.level)


class RenderOptions(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    locale: str = DEFAULT_LOCALE
    text_direction: Literal["ltr", "rtl"] | None = None  # None: derived from locale
    currency: str = "USD"
    pretty: bool = False
    chunk_size: int = Field(default=100, ge=1)
    full_document: bool = False
    preamble: bool = True
    title: str = "Report"
    max_depth: int = Field(default=16, ge=1)
    design: DocumentDesign = Field(default_factory=DocumentDesign)

    @property
    def direction(self) -> Literal["ltr", "rtl"]:
        return self.text_direction or locale_direction(self.locale)

    @property
    def language(self) -> str:
        return self.locale.replace("_", "-").split("-")[0].lower()

    @classmethod
    def from_settings(cls, settings: Any, design: DocumentDesign | None = None, **overrides: Any) -> "RenderOptions":
        """Options seeded from Settings; keyword overrides win."""
        values: dict[str, Any] = {
            "locale": settings.default_locale,
            "currency": settings.default_currency,
            "pretty": settings.pretty_print,
            "chunk_size": settings.json_chunk_size,
            "max_depth": settings.max_nesting_depth,
            "design": design or DocumentDesign.load_or_default(settings.design_path),
        }
        values.update(overrides)
        return cls(**values)
