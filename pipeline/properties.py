"""Property resolver: cascade layout -> row -> cell properties and normalize values.

The cascade is atomic per key: the most specific non-None value wins and
nested structures are never merged.  Normalization turns every accepted
authored encoding into the canonical models of ``models.properties`` so that
all three backends agree on what a value means.

Structural value errors (track sizes, alignments, lengths, directions) raise
InvalidPropertyError.  Colours are cosmetic: an unknown or malformed colour is
logged and replaced by "no paint" instead of failing the layout.
"""
import logging
import math
import re
from collections.abc import Callable, Mapping
from typing import Any

from models.layout import Cell, Row, Style, TableLayout
from models.properties import (
    Alignment,
    AutoTrack,
    CellContext,
    CellProperties,
    FitContentTrack,
    FixedTrack,
    FontWeight,
    FractionTrack,
    Length,
    MaxContentTrack,
    MinContentTrack,
    MinMaxTrack,
    NoPaint,
    NoStroke,
    Paint,
    ResolvedProperties,
    ResolvedStyle,
    Stroke,
    Track,
)
from pipeline.errors import (
    FunctionEvaluationError,
    InvalidAlignmentError,
    InvalidColorError,
    InvalidLengthError,
    InvalidPropertyError,
    InvalidTrackSizeError,
    PropertyValueError,
)

logger = logging.getLogger(__name__)

# Authored spellings that mean the same key
_KEY_ALIASES = {
    "gap": "gutter",
    "column_gap": "column_gutter",
    "row_gap": "row_gutter",
    "direction": "dir",
    "padding": "inset",
}


def normalize_key(key: str) -> str:
    key = str(key).replace("-", "_")
    return _KEY_ALIASES.get(key, key)


# ---------------------------------------------------------------------------
# Lengths
# ---------------------------------------------------------------------------

_LENGTH_RE = re.compile(r"^\s*(-?(?:\d+(?:\.\d*)?|\.\d+))\s*([a-z%]*)\s*$", re.IGNORECASE)
_LENGTH_UNITS = ("pt", "cm", "mm", "in", "em", "%", "px")


def parse_length(value: Any) -> Length:
    """Parse ``12``, ``12.5``, ``"12pt"``, ``"2cm"``, ``"50%"``; bare numbers are points."""
    if isinstance(value, Length):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            raise InvalidLengthError(value, f"Length must be finite, got {value!r}")
        return Length(value=float(value), unit="pt")
    if isinstance(value, str):
        match = _LENGTH_RE.match(value)
        if match is None:
            raise InvalidLengthError(value)
        number, unit = match.groups()
        unit = unit.lower() or "pt"
        if unit not in _LENGTH_UNITS:
            raise InvalidLengthError(value, f"Unknown unit in '{value}'")
        return Length(value=float(number), unit=unit)
    raise InvalidLengthError(value)


# ---------------------------------------------------------------------------
# Track sizes
# ---------------------------------------------------------------------------

_TRACK_TAGS = {"fr", "fraction", "fixed", "minmax", "fit-content", "fit_content"}
_MINMAX_RE = re.compile(r"^\s*minmax\(\s*([^,]+?)\s*,\s*([^)]+?)\s*\)\s*$")
_FIT_CONTENT_RE = re.compile(r"^\s*fit-content\(\s*([^)]+?)\s*\)\s*$")


def _fraction(value: Any, original: Any) -> FractionTrack:
    try:
        fraction = float(value)
    except (TypeError, ValueError):
        raise InvalidTrackSizeError(original) from None
    if not math.isfinite(fraction) or fraction <= 0:
        raise InvalidTrackSizeError(original)
    return FractionTrack(fraction=fraction)


def _fixed(value: Any, original: Any) -> FixedTrack:
    try:
        length = parse_length(value)
    except InvalidLengthError as exc:
        raise InvalidTrackSizeError(original) from exc
    if length.value < 0:
        raise InvalidTrackSizeError(original)
    return FixedTrack(length=length)


def _tagged_track(tag: str, args: list[Any], original: Any) -> Track:
    tag = tag.replace("_", "-")
    if tag in ("fr", "fraction") and len(args) == 1:
        return _fraction(args[0], original)
    if tag == "fixed" and len(args) in (1, 2):
        return _fixed(args[0] if len(args) == 1 else f"{args[0]}{args[1]}", original)
    if tag == "minmax" and len(args) == 2:
        return MinMaxTrack(min=parse_track(args[0]), max=parse_track(args[1]))
    if tag == "fit-content" and len(args) == 1:
        return FitContentTrack(bound=_fixed(args[0], original).length)
    if tag == "min-content" and not args:
        return MinContentTrack()
    if tag == "max-content" and not args:
        return MaxContentTrack()
    raise InvalidTrackSizeError(original)


def parse_track(value: Any) -> Track:
    """Normalize one track size.

    Accepts ``"auto"``, numbers (points), ``"1fr"``, length strings,
    ``"min-content"``, ``"max-content"``, ``"minmax(a, b)"``,
    ``"fit-content(x)"``, single-key mappings (``{"fr": 1}``,
    ``{"minmax": [a, b]}``, ``{"fixed": 2, "unit": "cm"}``) and tag tuples
    (``("fr", 1)``).
    """
    if isinstance(value, (AutoTrack, FractionTrack, FixedTrack, MinMaxTrack,
                          MinContentTrack, MaxContentTrack, FitContentTrack)):
        return value
    if value is None or value == "auto":
        return AutoTrack()
    if isinstance(value, bool):
        raise InvalidTrackSizeError(value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise InvalidTrackSizeError(value)
        return _fixed(value, value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("min-content", "max-content"):
            return _tagged_track(text, [], value)
        if text.endswith("fr"):
            return _fraction(text[:-2], value)
        if (m := _MINMAX_RE.match(text)) is not None:
            return MinMaxTrack(min=parse_track(m.group(1)), max=parse_track(m.group(2)))
        if (m := _FIT_CONTENT_RE.match(text)) is not None:
            return _tagged_track("fit-content", [m.group(1)], value)
        return _fixed(text, value)
    if isinstance(value, Mapping):
        if "fixed" in value:
            return _tagged_track("fixed", [value["fixed"], value.get("unit", "pt")], value)
        if len(value) == 1:
            tag, arg = next(iter(value.items()))
            if str(tag) in _TRACK_TAGS:
                args = list(arg) if isinstance(arg, (list, tuple)) else [arg]
                return _tagged_track(str(tag), args, value)
        raise InvalidTrackSizeError(value)
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], str) and value[0] in _TRACK_TAGS:
        return _tagged_track(value[0], list(value[1:]), value)
    raise InvalidTrackSizeError(value)


def parse_tracks(value: Any) -> list[Track] | int:
    """A track list, or an integer meaning that many equal tracks."""
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 1:
            raise InvalidTrackSizeError(value)
        return value
    if isinstance(value, (list, tuple)):
        if value and isinstance(value[0], str) and value[0] in _TRACK_TAGS:
            return [parse_track(value)]
        return [parse_track(v) for v in value]
    return [parse_track(value)]


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------

_HORIZONTAL = {"left": "start", "start": "start", "center": "center", "right": "end",
               "end": "end", "justify": "justify"}
_VERTICAL = {"top": "start", "start": "start", "horizon": "center", "middle": "center",
             "center": "center", "bottom": "end", "end": "end"}
_VERTICAL_ONLY = {"top", "horizon", "middle", "bottom"}
ALIGNMENT_TOKENS = sorted(set(_HORIZONTAL) | set(_VERTICAL))


def parse_alignment(value: Any) -> Alignment:
    """Accepts ``"center"``, ``"top"``, ``"left + bottom"``, ``("center", "top")``."""
    if isinstance(value, Alignment):
        return value
    if isinstance(value, str):
        parts = [p.strip().lower() for p in value.split("+")]
    elif isinstance(value, (list, tuple)):
        parts = [str(p).strip().lower() for p in value]
    else:
        raise InvalidAlignmentError(value)
    if len(parts) == 1:
        token = parts[0]
        if token in _VERTICAL_ONLY:
            return Alignment(vertical=_VERTICAL[token])
        if token in _HORIZONTAL:
            return Alignment(horizontal=_HORIZONTAL[token])
        raise InvalidAlignmentError(value)
    if len(parts) == 2:
        first, second = parts
        if first in _VERTICAL_ONLY and second in _HORIZONTAL:
            first, second = second, first
        if first in _HORIZONTAL and second in _VERTICAL:
            return Alignment(horizontal=_HORIZONTAL[first], vertical=_VERTICAL[second])
    raise InvalidAlignmentError(value)


# ---------------------------------------------------------------------------
# Paint and strokes
# ---------------------------------------------------------------------------

_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(\d*\.?\d+)\s*)?\)$",
    re.IGNORECASE,
)

NAMED_COLORS = frozenset({
    "black", "white", "gray", "grey", "silver", "red", "maroon", "orange", "yellow",
    "olive", "lime", "green", "teal", "aqua", "blue", "navy", "purple", "fuchsia",
    "eastern",
})


def parse_paint(value: Any) -> Paint | NoPaint:
    if isinstance(value, (Paint, NoPaint)):
        return value
    if value is None or value is False:
        return NoPaint()
    if not isinstance(value, str):
        raise InvalidColorError(value)
    text = value.strip()
    if text.lower() in ("none", "transparent"):
        return NoPaint()
    if _HEX_RE.match(text):
        return Paint(kind="hex", value=text.lower())
    if (m := _RGB_RE.match(text)) is not None:
        channels = [int(c) for c in m.groups()[:3]]
        if any(c > 255 for c in channels):
            raise InvalidColorError(value)
        hex_value = "#" + "".join(f"{c:02x}" for c in channels)
        if m.group(4) is not None:
            alpha = float(m.group(4))
            if alpha > 1:
                raise InvalidColorError(value)
            hex_value += f"{round(alpha * 255):02x}"
        return Paint(kind="hex", value=hex_value)
    if text.lower() in NAMED_COLORS:
        return Paint(kind="named", value=text.lower())
    raise InvalidColorError(value)


def paint_or_none(value: Any, node: str, property: str) -> Paint | NoPaint:
    """parse_paint with the cosmetic fallback: bad colours become no paint."""
    try:
        return parse_paint(value)
    except InvalidColorError as exc:
        logger.warning("%s on %s (%s); using no paint", exc.message, node, property)
        return NoPaint()


_DASHES = {"solid", "dashed", "dotted", "double"}


def parse_stroke(value: Any, node: str = "node") -> Stroke | NoStroke:
    """Accepts ``"none"``, ``1``, ``"1pt"``, ``"1pt red"``, ``"2pt + #ccc dashed"`` or a mapping."""
    if isinstance(value, (Stroke, NoStroke)):
        return value
    if value is None or value is False or (isinstance(value, str) and value.strip().lower() == "none"):
        return NoStroke()
    if value is True:
        return Stroke()
    if isinstance(value, (int, float, Length)):
        return Stroke(thickness=parse_length(value))
    if isinstance(value, Mapping):
        paint = value.get("paint", value.get("color"))
        dash = value.get("dash", "solid")
        if dash not in _DASHES:
            raise InvalidPropertyError(node, "stroke", value, sorted(_DASHES))
        fields: dict[str, Any] = {"dash": dash}
        if value.get("thickness") is not None:
            fields["thickness"] = parse_length(value["thickness"])
        if paint is not None:
            parsed = paint_or_none(paint, node, "stroke")
            if isinstance(parsed, NoPaint):
                return NoStroke()
            fields["paint"] = parsed
        return Stroke(**fields)
    if isinstance(value, str):
        fields = {}
        for token in value.replace("+", " ").split():
            lowered = token.lower()
            if lowered in _DASHES:
                fields["dash"] = lowered
                continue
            try:
                fields["thickness"] = parse_length(token)
                continue
            except InvalidLengthError:
                pass
            parsed = paint_or_none(token, node, "stroke")
            if isinstance(parsed, NoPaint):
                return NoStroke()
            fields["paint"] = parsed
        return Stroke(**fields)
    raise InvalidLengthError(value)


# ---------------------------------------------------------------------------
# Fonts
# ---------------------------------------------------------------------------

FONT_WEIGHTS: dict[str, int] = {
    "thin": 100,
    "extralight": 200,
    "light": 300,
    "regular": 400,
    "medium": 500,
    "semibold": 600,
    "bold": 700,
    "extrabold": 800,
    "black": 900,
}
_WEIGHT_ALIASES = {"normal": "regular", "hairline": "thin", "heavy": "black"}
_WEIGHT_NAMES = {number: name for name, number in FONT_WEIGHTS.items()}


def parse_font_weight(value: Any) -> FontWeight | None:
    """Named or numeric (100..900) weight; unknown weights are cosmetic and yield None."""
    if isinstance(value, FontWeight):
        return value
    if isinstance(value, int) and not isinstance(value, bool) and value in _WEIGHT_NAMES:
        return FontWeight(name=_WEIGHT_NAMES[value], numeric=value)
    if isinstance(value, str):
        name = value.strip().lower().replace("-", "").replace("_", "")
        name = _WEIGHT_ALIASES.get(name, name)
        if name in FONT_WEIGHTS:
            return FontWeight(name=name, numeric=FONT_WEIGHTS[name])
        if name.isdigit() and int(name) in _WEIGHT_NAMES:
            return parse_font_weight(int(name))
    logger.warning("Unknown font weight %r; using the default weight", value)
    return None


def resolve_style(style: Style | None) -> ResolvedStyle | None:
    """Normalize a content style; None when nothing is set."""
    if style is None or style.is_empty():
        return None
    node = "style"
    font_size = None
    if style.font_size is not None:
        try:
            font_size = parse_length(style.font_size)
        except InvalidLengthError as exc:
            raise InvalidPropertyError(node, "font_size", style.font_size, "a length") from exc
    text_align = None
    if style.text_align is not None:
        text_align = parse_alignment(style.text_align).horizontal
    return ResolvedStyle(
        font_size=font_size,
        font_weight=parse_font_weight(style.font_weight) if style.font_weight is not None else None,
        font_style=style.font_style,
        color=paint_or_none(style.color, node, "color") if style.color is not None else None,
        background_color=(
            paint_or_none(style.background_color, node, "background_color")
            if style.background_color is not None else None
        ),
        font_family=style.font_family,
        text_align=text_align,
    )


# ---------------------------------------------------------------------------
# Cascade and normalization
# ---------------------------------------------------------------------------

_DIRECTIONS = {"ttb": "ttb", "btt": "btt", "ltr": "ltr", "rtl": "rtl",
               "vertical": "ttb", "horizontal": "ltr"}


def _parse_direction(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in _DIRECTIONS:
        return _DIRECTIONS[value.strip().lower()]
    raise PropertyValueError(f"Invalid stack direction: {value!r}", value)


def _parse_breakable(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise PropertyValueError(f"Invalid breakable flag: {value!r}", value)


# key -> (parser, allowed-set description for error messages)
_PARSERS: dict[str, tuple[Callable[[Any], Any], str | list[str]]] = {
    "columns": (parse_tracks, "a column count or list of track sizes (auto, <n>fr, <length>, minmax, min-content, max-content, fit-content)"),
    "rows": (parse_tracks, "a row count or list of track sizes (auto, <n>fr, <length>, minmax, min-content, max-content, fit-content)"),
    "height": (parse_track, "a track size (auto, <n>fr, <length>)"),
    "gutter": (parse_length, "a length (pt, cm, mm, in, em, %, px)"),
    "column_gutter": (parse_length, "a length (pt, cm, mm, in, em, %, px)"),
    "row_gutter": (parse_length, "a length (pt, cm, mm, in, em, %, px)"),
    "inset": (parse_length, "a length (pt, cm, mm, in, em, %, px)"),
    "spacing": (parse_length, "a length (pt, cm, mm, in, em, %, px)"),
    "align": (parse_alignment, ALIGNMENT_TOKENS),
    "dir": (_parse_direction, sorted(_DIRECTIONS)),
    "breakable": (_parse_breakable, ["true", "false"]),
}


def cascade(*levels: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge raw property maps; later (more specific) levels win, None never overrides."""
    merged: dict[str, Any] = {}
    for level in levels:
        for key, value in (level or {}).items():
            if value is not None:
                merged[normalize_key(key)] = value
    return merged


def normalize_properties(raw: Mapping[str, Any], node: str) -> ResolvedProperties:
    """Normalize a raw property map.  Callables must already be evaluated (or dropped)."""
    fields: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in cascade(raw).items():
        if callable(value):
            continue
        if key == "fill":
            fields["fill"] = paint_or_none(value, node, key)
        elif key == "stroke":
            try:
                fields["stroke"] = parse_stroke(value, node)
            except PropertyValueError as exc:
                raise InvalidPropertyError(node, key, value, "none, a length, or 'thickness paint dash'") from exc
        elif key in _PARSERS:
            parser, allowed = _PARSERS[key]
            try:
                fields[key] = parser(value)
            except PropertyValueError as exc:
                raise InvalidPropertyError(node, key, value, allowed) from exc
        else:
            extra[key] = value
    return ResolvedProperties(**fields, extra=extra)


def evaluate_functions(raw: Mapping[str, Any], context: CellContext) -> dict[str, Any]:
    """Call function-valued properties with the cell context.

    A callback that raises degrades to "no value": the failure is logged as
    function_evaluation_failure and the key is dropped.
    """
    evaluated: dict[str, Any] = {}
    for key, value in raw.items():
        if callable(value):
            try:
                value = value(context)
            except Exception as exc:
                error = FunctionEvaluationError(key, (context.column, context.row), exc)
                logger.warning("%s: %s", error.code, error.message)
                continue
        if value is not None:
            evaluated[key] = value
    return evaluated


def _functions_only(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (raw or {}).items() if callable(v)}


def cell_node_name(cell: Cell) -> str:
    if cell.position is None:
        return "cell"
    return f"cell at ({cell.position[0]}, {cell.position[1]})"


def resolve_cell(
    cell: Cell,
    row_properties: Mapping[str, Any] | None = None,
    layout_properties: Mapping[str, Any] | None = None,
) -> CellProperties:
    """Resolve a placed cell's effective and overriding properties."""
    column, row = cell.position or (0, 0)
    context = CellContext(column=column, row=row, colspan=cell.colspan, rowspan=cell.rowspan)
    node = cell_node_name(cell)
    effective = cascade(layout_properties, row_properties, cell.properties)
    overrides = cascade(_functions_only(layout_properties), row_properties, cell.properties)
    return CellProperties(
        context=context,
        effective=normalize_properties(evaluate_functions(effective, context), node),
        overrides=normalize_properties(evaluate_functions(overrides, context), node),
    )


def resolve_layout(properties: Mapping[str, Any], node: str) -> ResolvedProperties:
    """Layout-level properties; function values only apply per cell and are skipped here."""
    return normalize_properties(properties, node)


def resolve_row(row: Row, node: str = "row") -> ResolvedProperties:
    if row.index is not None:
        node = f"row {row.index}"
    return normalize_properties(row.properties, node)


def validate_layout_properties(layout: Any) -> None:
    """Normalize every node of a (positioned) layout tree so that property errors
    surface before any backend starts emitting."""
    node = layout.type
    resolve_layout(layout.properties, node)
    rows: list[Row] = list(layout.rows)
    if isinstance(layout, TableLayout):
        for group in [*layout.headers, *layout.footers]:
            rows.extend(group.rows)
    for row in rows:
        resolve_row(row)
        for cell in row.cells:
            _validate_cell(cell)
    for cell in layout.cells:
        _validate_cell(cell)
    for line in layout.lines:
        if line.stroke is not None:
            parse_stroke(line.stroke, f"{line.orientation} line")


def _validate_cell(cell: Cell) -> None:
    normalize_properties(cell.properties, cell_node_name(cell))
    for item in cell.content:
        if item.type == "nested_layout":
            validate_layout_properties(item.layout)
        else:
            resolve_style(item.style)
