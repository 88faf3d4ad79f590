"""Markup backend: Typst ``#grid(...)``, ``#table(...)`` and ``#stack(...)`` calls.

Layout-level properties become named call parameters; cells that only carry
content render as plain ``[content]`` blocks, anything else as
``grid.cell(...)[...]`` / ``table.cell(...)[...]``.  Cells that Typst's own
auto-placement would put elsewhere get explicit ``x:``/``y:`` coordinates, so
the document matches the positioning engine exactly.

Text is escaped for Typst markup (``#``, ``*``, ``[``, ``/`` ...).  HTML specials are
left alone.
"""
import logging
from typing import Any

from models.layout import Cell, FieldContent, GridLayout, LabelContent, Line, Row, StackLayout, TableLayout
from models.options import RenderOptions
from models.properties import (
    Alignment,
    AutoTrack,
    FitContentTrack,
    FixedTrack,
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
    plain_number,
)
from pipeline.interpolation import field_text, interpolate
from pipeline.positioning import column_count
from pipeline.properties import cascade, parse_stroke, resolve_cell, resolve_layout, resolve_style

logger = logging.getLogger(__name__)

INDENT = "  "
DEFAULT_TABLE_STROKE = "1pt"

_ESCAPED = "\\#$@*_[]{}`~/"
_HORIZONTAL = {"start": "start", "center": "center", "end": "end", "justify": "start"}
_VERTICAL = {"start": "top", "center": "horizon", "end": "bottom"}
_NAMED_COLORS = {"grey": "gray"}


def escape_markup(text: str) -> str:
    """Backslash-escape characters with a meaning in Typst markup."""
    return "".join("\\" + ch if ch in _ESCAPED else ch for ch in text)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


# ---------------------------------------------------------------------------
# Value mapping
# ---------------------------------------------------------------------------

def typst_length(length: Length) -> str:
    if length.unit == "px":
        return f"{plain_number(length.value)}pt"
    return length.text()


def typst_track(track: Any) -> str:
    if isinstance(track, FractionTrack):
        return f"{plain_number(track.fraction)}fr"
    if isinstance(track, FixedTrack):
        return typst_length(track.length)
    if isinstance(track, MinMaxTrack):
        # no minmax() in Typst; the flexible upper bound is the closest match
        return typst_track(track.max)
    if isinstance(track, (AutoTrack, MinContentTrack, MaxContentTrack, FitContentTrack)):
        return "auto"
    raise TypeError(f"Unknown track size {track!r}")


def typst_tracks(tracks: list[Any] | int) -> str:
    if isinstance(tracks, int):
        return str(tracks)
    return "(" + ", ".join(typst_track(t) for t in tracks) + ("," if len(tracks) == 1 else "") + ")"


def typst_paint(paint: Paint | NoPaint) -> str:
    if isinstance(paint, NoPaint):
        return "none"
    if paint.kind == "hex":
        return f'rgb("{paint.value}")'
    return _NAMED_COLORS.get(paint.value, paint.value)


def typst_stroke(stroke: Stroke | NoStroke) -> str:
    if isinstance(stroke, NoStroke):
        return "none"
    thickness = typst_length(stroke.thickness)
    dash = stroke.dash
    if dash == "double":
        logger.debug("Typst has no double strokes; drawing a solid one")
        dash = "solid"
    if dash != "solid":
        fields = [f"thickness: {thickness}"]
        if stroke.paint is not None:
            fields.append(f"paint: {typst_paint(stroke.paint)}")
        fields.append(f'dash: "{dash}"')
        return "(" + ", ".join(fields) + ")"
    if stroke.paint is not None:
        return f"{thickness} + {typst_paint(stroke.paint)}"
    return thickness


def typst_alignment(align: Alignment) -> str:
    parts = []
    if align.horizontal is not None:
        parts.append(_HORIZONTAL[align.horizontal])
    if align.vertical is not None:
        parts.append(_VERTICAL[align.vertical])
    return " + ".join(parts)


def layout_parameters(props: ResolvedProperties) -> list[str]:
    """Container parameters in a fixed order."""
    params = []
    if props.columns is not None:
        params.append(f"columns: {typst_tracks(props.columns)}")
    if props.rows is not None:
        params.append(f"rows: {typst_tracks(props.rows)}")
    if props.gutter is not None:
        params.append(f"gutter: {typst_length(props.gutter)}")
    if props.column_gutter is not None:
        params.append(f"column-gutter: {typst_length(props.column_gutter)}")
    if props.row_gutter is not None:
        params.append(f"row-gutter: {typst_length(props.row_gutter)}")
    if props.align is not None:
        params.append(f"align: {typst_alignment(props.align)}")
    if props.inset is not None:
        params.append(f"inset: {typst_length(props.inset)}")
    if props.fill is not None:
        params.append(f"fill: {typst_paint(props.fill)}")
    if props.stroke is not None:
        params.append(f"stroke: {typst_stroke(props.stroke)}")
    return params


def _call(name: str, params: list[str], items: list[str], indent: int) -> str:
    pad = INDENT * indent
    inner = INDENT * (indent + 1)
    lines = [f"{inner}{p}," for p in params] + [f"{item}," for item in items]
    if not lines:
        return f"{pad}{name}()"
    return f"{pad}{name}(\n" + "\n".join(lines) + f"\n{pad})"


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

def render(layout: Any, options: RenderOptions, indent: int = 0) -> str:
    """Render one positioned layout to a Typst function call."""
    if isinstance(layout, GridLayout):
        return _render_grid(layout, options, indent)
    if isinstance(layout, TableLayout):
        return _render_table(layout, options, indent)
    if isinstance(layout, StackLayout):
        return _render_stack(layout, options, indent)
    raise TypeError(f"Unknown layout node {type(layout).__name__}")


def preamble(options: RenderOptions) -> list[str]:
    design = options.design
    lines = [f"#set page(paper: {_quote(design.page.paper)})"]
    if design.page.margin:
        lines.append(f"#set page(margin: {design.page.margin})")
    if design.font.family:
        lines.append(f"#set text(font: {_quote(design.font.family)})")
    if design.font.size_pt:
        lines.append(f"#set text(size: {plain_number(design.font.size_pt)}pt)")
    lines.append(f"#set text(lang: {_quote(options.language)})")
    if options.direction == "rtl":
        lines.append("#set text(dir: rtl)")
    return lines


def render_document(layouts: list[Any], options: RenderOptions) -> str:
    """All layouts separated by a blank line, after the optional ``#set`` preamble."""
    blocks = [render(layout, options) for layout in layouts]
    if options.preamble:
        blocks.insert(0, "\n".join(preamble(options)))
    return "\n\n".join(blocks) + "\n"


# ---------------------------------------------------------------------------
# Grid and table
# ---------------------------------------------------------------------------

def _render_grid(layout: GridLayout, options: RenderOptions, indent: int) -> str:
    props = resolve_layout(layout.properties, "grid")
    columns = column_count(layout.properties, "grid")
    items = _cell_items(_flatten(layout.children), layout.properties, columns, options, indent + 1, "grid")
    items.extend(_line(line, "grid", indent + 1) for line in layout.lines)
    return _call("#grid", layout_parameters(props), items, indent)


def _render_table(layout: TableLayout, options: RenderOptions, indent: int) -> str:
    layout_props = cascade({"stroke": DEFAULT_TABLE_STROKE}, layout.properties)
    props = resolve_layout(layout_props, "table")
    columns = column_count(layout.properties, "table")
    # each section is positioned from row 0; Typst's y counts from the first header row
    offset = 0
    items: list[str] = []
    for header in layout.headers:
        items.append(_row_group("table.header", header, layout_props, columns, options, indent + 1, offset))
        offset += _section_height(header.rows)
    items.extend(_cell_items(_flatten(layout.children), layout_props, columns, options, indent + 1, "table", offset))
    offset += _section_height(layout.children)
    for footer in layout.footers:
        items.append(_row_group("table.footer", footer, layout_props, columns, options, indent + 1, offset))
        offset += _section_height(footer.rows)
    items.extend(_line(line, "table", indent + 1) for line in layout.lines)
    return _call("#table", layout_parameters(props), items, indent)


def _row_group(
    name: str,
    group: Any,
    layout_props: dict,
    columns: int,
    options: RenderOptions,
    indent: int,
    row_offset: int = 0,
) -> str:
    params = [] if group.repeat else ["repeat: false"]
    cells = _cell_items(_flatten(group.rows), layout_props, columns, options, indent + 1, "table", row_offset)
    return _call(name, params, cells, indent)


def _section_height(children: list[Any]) -> int:
    heights = [child.index + 1 for child in children if isinstance(child, Row)]
    heights += [cell.position[1] + cell.rowspan for cell, _ in _flatten(children)]
    return max(heights, default=0)


def _flatten(children: list[Any]) -> list[tuple[Cell, dict | None]]:
    """(cell, row properties) pairs in document order."""
    flat: list[tuple[Cell, dict | None]] = []
    for child in children:
        if isinstance(child, Row):
            flat.extend((cell, child.properties) for cell in child.cells)
        else:
            flat.append((child, None))
    return flat


def _auto_slots(cells: list[Cell], columns: int) -> list[bool]:
    """For each cell, whether Typst's auto-placement lands it on its assigned anchor."""
    taken: set[tuple[int, int]] = set()
    cursor = (0, 0)
    automatic = []
    for cell in cells:
        col, row = cursor
        while True:
            if col + cell.colspan > columns:
                col, row = 0, row + 1
                continue
            if (col, row) not in taken:
                break
            col += 1
        is_auto = (col, row) == cell.position
        automatic.append(is_auto)
        if is_auto:
            cursor = (col + cell.colspan, row) if col + cell.colspan < columns else (0, row + 1)
        taken.update(cell.occupied_positions())
    return automatic


def _cell_items(
    flat: list[tuple[Cell, dict | None]],
    layout_props: dict,
    columns: int,
    options: RenderOptions,
    indent: int,
    context: str,
    row_offset: int = 0,
) -> list[str]:
    automatic = _auto_slots([cell for cell, _ in flat], columns)
    return [
        _cell(cell, row_props, layout_props, options, indent, context, explicit=not auto, row_offset=row_offset)
        for (cell, row_props), auto in zip(flat, automatic)
    ]


def _cell(
    cell: Cell,
    row_props: dict | None,
    layout_props: dict,
    options: RenderOptions,
    indent: int,
    context: str,
    explicit: bool = False,
    row_offset: int = 0,
) -> str:
    overrides = resolve_cell(cell, row_props, layout_props).overrides
    params = []
    if explicit and cell.position is not None:
        params += [f"x: {cell.position[0]}", f"y: {cell.position[1] + row_offset}"]
    if cell.colspan > 1:
        params.append(f"colspan: {cell.colspan}")
    if cell.rowspan > 1:
        params.append(f"rowspan: {cell.rowspan}")
    if overrides.align is not None:
        params.append(f"align: {typst_alignment(overrides.align)}")
    if overrides.fill is not None:
        params.append(f"fill: {typst_paint(overrides.fill)}")
    if overrides.inset is not None:
        params.append(f"inset: {typst_length(overrides.inset)}")
    if overrides.stroke is not None:
        params.append(f"stroke: {typst_stroke(overrides.stroke)}")
    if overrides.breakable is False:
        params.append("breakable: false")
    body = f"[{_render_content(cell, options)}]"
    pad = INDENT * indent
    if not params:
        return f"{pad}{body}"
    return f"{pad}{context}.cell({', '.join(params)}){body}"


def _line(line: Line, context: str, indent: int) -> str:
    if line.orientation == "horizontal":
        name, params = f"{context}.hline", [f"y: {line.position}"]
    else:
        name, params = f"{context}.vline", [f"x: {line.position}"]
    if line.start is not None:
        params.append(f"start: {line.start}")
    if line.end is not None:
        params.append(f"end: {line.end}")
    if line.stroke is not None:
        params.append(f"stroke: {typst_stroke(parse_stroke(line.stroke, 'line'))}")
    return f"{INDENT * indent}{name}({', '.join(params)})"


# ---------------------------------------------------------------------------
# Stack
# ---------------------------------------------------------------------------

def _render_stack(layout: StackLayout, options: RenderOptions, indent: int) -> str:
    props = resolve_layout(layout.properties, "stack")
    params = [f"dir: {props.dir or 'ttb'}"]
    spacing = props.spacing or props.gutter
    if spacing is not None:
        params.append(f"spacing: {typst_length(spacing)}")
    items = []
    pad = INDENT * (indent + 1)
    for cell in layout.cells:
        overrides = resolve_cell(cell, None, layout.properties).overrides
        block = []
        if overrides.fill is not None:
            block.append(f"fill: {typst_paint(overrides.fill)}")
        if overrides.inset is not None:
            block.append(f"inset: {typst_length(overrides.inset)}")
        if overrides.stroke is not None:
            block.append(f"stroke: {typst_stroke(overrides.stroke)}")
        body = f"[{_render_content(cell, options)}]"
        if overrides.align is not None:
            body = f"align({typst_alignment(overrides.align)}){body}"
            if not block:
                items.append(pad + body)
                continue
            body = f"[#{body}]"
        items.append(f"{pad}block({', '.join(block)}){body}" if block else pad + body)
    return _call("#stack", params, items, indent)


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

def _render_content(cell: Cell, options: RenderOptions) -> str:
    parts = []
    for item in cell.content:
        if isinstance(item, LabelContent):
            text = interpolate(item.text, options.data, options.locale, escape=escape_markup)
            parts.append(_styled(text, resolve_style(item.style)))
        elif isinstance(item, FieldContent):
            text = escape_markup(field_text(item, options.data, options.locale, options.currency))
            parts.append(_styled(text, resolve_style(item.style)))
        else:
            parts.append(render(item.layout, options))
    return " ".join(parts)


def _styled(text: str, style: ResolvedStyle | None) -> str:
    if style is None:
        return text
    params = []
    if style.font_size is not None:
        params.append(f"size: {typst_length(style.font_size)}")
    if style.font_weight is not None:
        params.append(f'weight: "{style.font_weight.name}"')
    if style.font_style is not None:
        params.append(f'style: "{style.font_style}"')
    if style.color is not None:
        params.append(f"fill: {typst_paint(style.color)}")
    if style.font_family is not None:
        params.append(f"font: {_quote(style.font_family)}")
    if params:
        text = f"#text({', '.join(params)})[{text}]"
    if style.background_color is not None and not isinstance(style.background_color, NoPaint):
        text = f"#highlight(fill: {typst_paint(style.background_color)})[{text}]"
    if style.text_align is not None:
        text = f"#align({_HORIZONTAL[style.text_align]})[{text}]"
    return text
