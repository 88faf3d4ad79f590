"""Layout IR: an immutable tree of grids, tables and stacks.

Built once per render request (from Python, JSON or YAML) and never mutated:
the positioning engine returns copies with coordinates filled in.  Every node
carries a literal ``type`` tag so the tree is a closed tagged union.

Property maps hold raw authored values.  A value may also be a callable taking
a ``CellContext`` and returning the actual value (e.g. a zebra-striped fill).
"""
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, field_validator

Position = tuple[int, int]
Span = tuple[int, int]


def rectangle(position: Position, span: Span) -> list[Position]:
    """All (column, row) pairs covered by a cell anchored at position."""
    col, row = position
    colspan, rowspan = span
    return [(c, r) for r in range(row, row + rowspan) for c in range(col, col + colspan)]


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class Style(_Node):
    font_size: float | str | None = None      # number = points, or "12pt"
    font_weight: str | int | None = None      # "bold", "semibold", 600 ...
    font_style: Literal["normal", "italic", "oblique"] | None = None
    color: str | None = None
    background_color: str | None = None
    font_family: str | None = None
    text_align: Literal["left", "center", "right", "justify", "start", "end"] | None = None

    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class LabelContent(_Node):
    type: Literal["label"] = "label"
    text: str
    style: Style | None = None


class FieldContent(_Node):
    type: Literal["field"] = "field"
    source: list[str] = Field(min_length=1)
    format: Literal["number", "currency", "percent", "date", "time", "datetime", "boolean"] | None = None
    decimal_places: int | None = Field(default=None, ge=0, le=15)
    currency: str | None = None  # ISO code; falls back to the render options' currency
    style: Style | None = None

    @field_validator("source", mode="before")
    @classmethod
    def source_as_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.split(".")
        if isinstance(v, (list, tuple)):
            return [str(key) for key in v]
        return v


class NestedLayoutContent(_Node):
    type: Literal["nested_layout"] = "nested_layout"
    layout: "Layout"


def _content_kind(v: Any) -> str | None:
    if isinstance(v, dict):
        if "type" in v:
            return v["type"]
        if "source" in v:
            return "field"
        if "layout" in v:
            return "nested_layout"
        return "label"
    return getattr(v, "type", None)


Content = Annotated[
    Union[
        Annotated[LabelContent, Tag("label")],
        Annotated[FieldContent, Tag("field")],
        Annotated[NestedLayoutContent, Tag("nested_layout")],
    ],
    Discriminator(_content_kind),
]


# ---------------------------------------------------------------------------
# Cells, rows, row groups, lines
# ---------------------------------------------------------------------------

class Cell(_Node):
    type: Literal["cell"] = "cell"
    position: Position | None = None  # None: placed by flow
    span: Span = (1, 1)
    properties: dict[str, Any] = Field(default_factory=dict)
    content: list[Content] = Field(default_factory=list)

    @field_validator("position")
    @classmethod
    def position_must_be_non_negative(cls, v: Position | None) -> Position | None:
        if v is not None and (v[0] < 0 or v[1] < 0):
            raise ValueError("cell position must be non-negative")
        return v

    @field_validator("span")
    @classmethod
    def span_must_be_positive(cls, v: Span) -> Span:
        if v[0] < 1 or v[1] < 1:
            raise ValueError("colspan and rowspan must be at least 1")
        return v

    @field_validator("content", mode="before")
    @classmethod
    def text_as_label(cls, v: Any) -> Any:
        """Plain strings are shorthand for label content."""
        if isinstance(v, str):
            v = [v]
        if isinstance(v, (list, tuple)):
            return [{"type": "label", "text": item} if isinstance(item, str) else item for item in v]
        return v

    @property
    def colspan(self) -> int:
        return self.span[0]

    @property
    def rowspan(self) -> int:
        return self.span[1]

    @property
    def is_explicit(self) -> bool:
        return self.position is not None

    def occupied_positions(self) -> list[Position]:
        if self.position is None:
            raise ValueError("flow cell has no position until it is placed")
        return rectangle(self.position, self.span)


class Row(_Node):
    type: Literal["row"] = "row"
    cells: list[Cell] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)
    index: int | None = None  # assigned by positioning


class Header(_Node):
    type: Literal["header"] = "header"
    rows: list[Row] = Field(default_factory=list)
    repeat: bool = True


class Footer(_Node):
    type: Literal["footer"] = "footer"
    rows: list[Row] = Field(default_factory=list)
    repeat: bool = True


class Line(_Node):
    type: Literal["line"] = "line"
    orientation: Literal["horizontal", "vertical"]
    position: int = Field(ge=0)
    start: int | None = Field(default=None, ge=0)
    end: int | None = Field(default=None, ge=0)
    stroke: Any = None


def _child_kind(v: Any) -> str | None:
    if isinstance(v, dict):
        return v.get("type", "row" if "cells" in v else "cell")
    return getattr(v, "type", None)


Child = Annotated[
    Union[Annotated[Cell, Tag("cell")], Annotated[Row, Tag("row")]],
    Discriminator(_child_kind),
]


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

class _LayoutBase(_Node):
    properties: dict[str, Any] = Field(default_factory=dict)
    children: list[Child] = Field(default_factory=list)
    lines: list[Line] = Field(default_factory=list)

    @property
    def cells(self) -> list[Cell]:
        return [c for c in self.children if isinstance(c, Cell)]

    @property
    def rows(self) -> list[Row]:
        return [c for c in self.children if isinstance(c, Row)]


class GridLayout(_LayoutBase):
    type: Literal["grid"] = "grid"


class TableLayout(_LayoutBase):
    type: Literal["table"] = "table"
    headers: list[Header] = Field(default_factory=list)
    footers: list[Footer] = Field(default_factory=list)


class StackLayout(_LayoutBase):
    type: Literal["stack"] = "stack"


Layout = Annotated[Union[GridLayout, TableLayout, StackLayout], Field(discriminator="type")]

NestedLayoutContent.model_rebuild()
Cell.model_rebuild()
Row.model_rebuild()
Header.model_rebuild()
Footer.model_rebuild()
GridLayout.model_rebuild()
TableLayout.model_rebuild()
StackLayout.model_rebuild()

_layout_adapter: TypeAdapter = TypeAdapter(Layout)


def parse_layout(data: Any) -> GridLayout | TableLayout | StackLayout:
    """Validate a plain dict (as loaded from JSON/YAML) into a layout node."""
    return _layout_adapter.validate_python(data)


def load_layouts(path: Path) -> list[GridLayout | TableLayout | StackLayout]:
    """Load one layout, a list of layouts or ``{layouts: [...]}`` from a YAML or JSON file.

    Raises FileNotFoundError if path does not exist.
    """
    import yaml  # lazy; JSON is a YAML subset so one loader reads both
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "layouts" in data:
        data = data["layouts"]
    if isinstance(data, list):
        return [parse_layout(item) for item in data]
    return [parse_layout(data)]
