"""Canonical (normalized) property values shared by every backend.

Authors may write a track size as ``"auto"``, ``2``, ``"1fr"``, ``{"fr": 1}``,
``"3cm"`` or ``{"minmax": ["2cm", "1fr"]}``; the resolver turns all of them into
one of the Track models below, and each backend maps the normalized value into
its own syntax.
"""
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

LengthUnit = Literal["pt", "cm", "mm", "in", "em", "%", "px"]

# Points per unit, for the absolute units only
POINTS_PER_UNIT: dict[str, float] = {
    "pt": 1.0,
    "px": 1.0,
    "in": 72.0,
    "cm": 28.3465,
    "mm": 2.83465,
}


def plain_number(value: float) -> str:
    """Shortest decimal form: 12.0 -> '12', 0.25 -> '0.25'."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


class _Value(BaseModel):
    model_config = ConfigDict(frozen=True)


class CellContext(_Value):
    """What a function-valued property receives: the cell's placed geometry."""
    column: int
    row: int
    colspan: int = 1
    rowspan: int = 1

    @property
    def x(self) -> int:
        return self.column

    @property
    def y(self) -> int:
        return self.row


class Length(_Value):
    value: float
    unit: LengthUnit = "pt"

    def to_points(self) -> float | None:
        factor = POINTS_PER_UNIT.get(self.unit)
        return None if factor is None else self.value * factor

    def text(self) -> str:
        return f"{plain_number(self.value)}{self.unit}"


# ---------------------------------------------------------------------------
# Track sizes
# ---------------------------------------------------------------------------

class AutoTrack(_Value):
    kind: Literal["auto"] = "auto"


class FractionTrack(_Value):
    kind: Literal["fraction"] = "fraction"
    fraction: float = Field(gt=0)


class FixedTrack(_Value):
    kind: Literal["fixed"] = "fixed"
    length: Length


class MinMaxTrack(_Value):
    kind: Literal["minmax"] = "minmax"
    min: "Track"
    max: "Track"


class MinContentTrack(_Value):
    kind: Literal["min-content"] = "min-content"


class MaxContentTrack(_Value):
    kind: Literal["max-content"] = "max-content"


class FitContentTrack(_Value):
    kind: Literal["fit-content"] = "fit-content"
    bound: Length


Track = Union[AutoTrack, FractionTrack, FixedTrack, MinMaxTrack, MinContentTrack, MaxContentTrack, FitContentTrack]
MinMaxTrack.model_rebuild()


# ---------------------------------------------------------------------------
# Alignment, paint, stroke, font weight
# ---------------------------------------------------------------------------

HorizontalAlign = Literal["start", "center", "end", "justify"]
VerticalAlign = Literal["start", "center", "end"]


class Alignment(_Value):
    horizontal: HorizontalAlign | None = None
    vertical: VerticalAlign | None = None


class Paint(_Value):
    kind: Literal["named", "hex"]
    value: str


class NoPaint(_Value):
    kind: Literal["none"] = "none"


DashStyle = Literal["solid", "dashed", "dotted", "double"]


class Stroke(_Value):
    kind: Literal["stroke"] = "stroke"
    thickness: Length = Field(default_factory=lambda: Length(value=1))
    paint: Paint | None = None  # None: backend default (currentColor / black)
    dash: DashStyle = "solid"


class NoStroke(_Value):
    kind: Literal["none"] = "none"


class FontWeight(_Value):
    name: str      # markup backend: "regular", "bold", ...
    numeric: int   # HTML backend: 400, 700, ...


StackDirection = Literal["ttb", "btt", "ltr", "rtl"]


# ---------------------------------------------------------------------------
# Resolved property sets
# ---------------------------------------------------------------------------

class ResolvedProperties(_Value):
    """Normalized view of one node's properties.  Every field is optional."""
    columns: list[Track] | int | None = None  # int: N equal tracks
    rows: list[Track] | int | None = None
    gutter: Length | None = None
    column_gutter: Length | None = None
    row_gutter: Length | None = None
    align: Alignment | None = None
    inset: Length | None = None
    fill: Paint | NoPaint | None = None
    stroke: Stroke | NoStroke | None = None
    height: Track | None = None
    dir: StackDirection | None = None
    spacing: Length | None = None
    breakable: bool | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None for name in type(self).model_fields if name != "extra"
        ) and not self.extra


class CellProperties(_Value):
    """Per-cell resolution result.

    ``effective`` is the full layout -> row -> cell cascade; ``overrides`` holds
    only what the row or the cell itself sets (plus evaluated layout-level
    functions), for backends whose container already applies layout defaults.
    """
    context: CellContext
    effective: ResolvedProperties
    overrides: ResolvedProperties


class ResolvedStyle(_Value):
    font_size: Length | None = None
    font_weight: FontWeight | None = None
    font_style: Literal["normal", "italic", "oblique"] | None = None
    color: Paint | NoPaint | None = None
    background_color: Paint | NoPaint | None = None
    font_family: str | None = None
    text_align: HorizontalAlign | None = None

    def is_empty(self) -> bool:
        return all(v is None for v in self.__dict__.values())
