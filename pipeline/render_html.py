"""HTML backend: CSS Grid containers, Flexbox stacks and semantic tables.

Every interpolated value and every literal text fragment is HTML-escaped with
markupsafe.  CSS values are built from normalized properties only and are
additionally sanitized, so authored values cannot break out of a ``style``
attribute.  Points map 1:1 to pixels; other units pass through unchanged.
"""
import logging
import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

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
    ResolvedStyle,
    Stroke,
    plain_number,
)
from pipeline.interpolation import field_text, interpolate
from pipeline.positioning import column_count
from pipeline.properties import cascade, parse_stroke, resolve_cell, resolve_layout, resolve_row, resolve_style

logger = logging.getLogger(__name__)

# Path (relative to the package root) where Jinja2 looks for templates
_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

DEFAULT_TABLE_STROKE = "1pt solid #000"

_CSS_UNSAFE_RE = re.compile(r"/\*|\*/|[;{}:<>\\]")

_FLEX_DIRECTIONS = {"ttb": "column", "btt": "column-reverse", "ltr": "row", "rtl": "row-reverse"}
_VERTICAL_ALIGN = {"start": "top", "center": "middle", "end": "bottom"}
_JUSTIFY_ITEMS = {"start": "start", "center": "center", "end": "end", "justify": "stretch"}


def html_escape(text: str) -> str:
    return str(escape(text))


# ---------------------------------------------------------------------------
# CSS value mapping
# ---------------------------------------------------------------------------

def sanitize_css(value: str) -> str:
    """Strip characters that could end a declaration or the style attribute."""
    return _CSS_UNSAFE_RE.sub("", value).strip()


def css_length(length: Length) -> str:
    if length.unit == "pt":
        return f"{plain_number(length.value)}px"
    return length.text()


def css_track(track: Any) -> str:
    if isinstance(track, AutoTrack):
        return "auto"
    if isinstance(track, FractionTrack):
        return f"{plain_number(track.fraction)}fr"
    if isinstance(track, FixedTrack):
        return css_length(track.length)
    if isinstance(track, MinMaxTrack):
        return f"minmax({css_track(track.min)}, {css_track(track.max)})"
    if isinstance(track, MinContentTrack):
        return "min-content"
    if isinstance(track, MaxContentTrack):
        return "max-content"
    if isinstance(track, FitContentTrack):
        return f"fit-content({css_length(track.bound)})"
    raise TypeError(f"Unknown track size {track!r}")


def css_tracks(tracks: list[Any] | int, repeat_size: str) -> str:
    if isinstance(tracks, int):
        return f"repeat({tracks}, {repeat_size})"
    return " ".join(css_track(t) for t in tracks)


def css_paint(paint: Paint | NoPaint | None) -> str:
    if paint is None or isinstance(paint, NoPaint):
        return "transparent"
    return sanitize_css(paint.value)


def css_stroke(stroke: Stroke | NoStroke) -> str:
    if isinstance(stroke, NoStroke):
        return "none"
    paint = css_paint(stroke.paint) if stroke.paint is not None else "currentColor"
    return f"{css_length(stroke.thickness)} {stroke.dash} {paint}"


def _declarations(pairs: list[tuple[str, str | None]]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in pairs if value is not None)


def _style_attr(pairs: list[tuple[str, str | None]]) -> str:
    styles = _declarations(pairs)
    return f' style="{html_escape(styles)}"' if styles else ""


def _fill(paint: Paint | NoPaint | None) -> str | None:
    return None if paint is None or isinstance(paint, NoPaint) else css_paint(paint)


def _text_align(align: Alignment | None) -> str | None:
    return align.horizontal if align is not None else None


def _vertical_align(align: Alignment | None) -> str | None:
    if align is None or align.vertical is None:
        return None
    return _VERTICAL_ALIGN[align.vertical]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

def render(layout: Any, options: RenderOptions) -> str:
    """Render one positioned layout to an HTML fragment."""
    if isinstance(layout, GridLayout):
        return _render_grid(layout, options)
    if isinstance(layout, TableLayout):
        return _render_table(layout, options)
    if isinstance(layout, StackLayout):
        return _render_stack(layout, options)
    raise TypeError(f"Unknown layout node {type(layout).__name__}")


def render_all(layouts: list[Any], options: RenderOptions) -> str:
    """Several layouts wrapped in one ``ash-report`` container."""
    return '<div class="ash-report">' + "".join(render(layout, options) for layout in layouts) + "</div>"


def render_document(layouts: list[Any], options: RenderOptions) -> str:
    """A complete HTML document with title, default stylesheet and the rendered layouts."""
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "html.j2"]),
    )
    template = env.get_template("document.html.j2")
    theme = options.design.html
    return template.render(
        title=options.title,
        lang=options.language,
        direction=options.direction,
        theme_vars={name: sanitize_css(value) for name, value in theme.stylesheet_vars.items()},
        fragments=[Markup(render(layout, options)) for layout in layouts],
    )


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------

def _render_grid(layout: GridLayout, options: RenderOptions) -> str:
    props = resolve_layout(layout.properties, "grid")
    styles = [
        ("display", "grid"),
        ("grid-template-columns", css_tracks(props.columns, "1fr") if props.columns is not None else None),
        ("grid-template-rows", css_tracks(props.rows, "auto") if props.rows is not None else None),
        ("gap", css_length(props.gutter) if props.gutter else None),
        ("column-gap", css_length(props.column_gutter) if props.column_gutter else None),
        ("row-gap", css_length(props.row_gutter) if props.row_gutter else None),
        ("justify-items", _JUSTIFY_ITEMS[props.align.horizontal] if props.align and props.align.horizontal else None),
        ("align-items", props.align.vertical if props.align and props.align.vertical else None),
        ("background-color", _fill(props.fill)),
    ]
    children = []
    for child in layout.children:
        if isinstance(child, Row):
            children.extend(_grid_cell(c, child.properties, layout.properties, options) for c in child.cells)
        else:
            children.append(_grid_cell(child, None, layout.properties, options))
    children.extend(_grid_line(line) for line in layout.lines)
    return f'<div class="ash-grid"{_style_attr(styles)}>{"".join(children)}</div>'


def _grid_placement(start: int, span: int) -> str:
    if span > 1:
        return f"{start + 1} / span {span}"
    return str(start + 1)


def _grid_cell(cell: Cell, row_props: dict | None, layout_props: dict, options: RenderOptions) -> str:
    resolved = resolve_cell(cell, row_props, layout_props)
    effective, overrides = resolved.effective, resolved.overrides
    col, row = cell.position or (0, 0)
    styles = [
        ("grid-column", _grid_placement(col, cell.colspan)),
        ("grid-row", _grid_placement(row, cell.rowspan)),
        *_cell_box_styles(effective, overrides),
    ]
    return f'<div class="ash-cell"{_style_attr(styles)}>{_render_content(cell, options)}</div>'


def _cell_box_styles(effective: Any, overrides: Any) -> list[tuple[str, str | None]]:
    return [
        ("padding", css_length(effective.inset) if effective.inset else None),
        ("background-color", _fill(overrides.fill)),
        ("border", css_stroke(effective.stroke) if effective.stroke else None),
        ("text-align", _text_align(overrides.align)),
        ("vertical-align", _vertical_align(overrides.align)),
    ]


def _line_stroke(line: Line) -> str:
    if line.stroke is None:
        return "1px solid currentColor"
    return css_stroke(parse_stroke(line.stroke, "line"))


def _grid_line(line: Line) -> str:
    stroke = _line_stroke(line)
    start = (line.start or 0) + 1
    end = str(line.end + 1) if line.end is not None else "-1"
    if line.orientation == "horizontal":
        styles = [("grid-column", f"{start} / {end}"), ("grid-row", str(line.position + 1)),
                  ("border-top", stroke), ("align-self", "start")]
        return f'<div class="ash-line ash-hline"{_style_attr(styles)}></div>'
    styles = [("grid-row", f"{start} / {end}"), ("grid-column", str(line.position + 1)),
              ("border-left", stroke), ("justify-self", "start")]
    return f'<div class="ash-line ash-vline"{_style_attr(styles)}></div>'


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

def _render_table(layout: TableLayout, options: RenderOptions) -> str:
    layout_props = cascade({"stroke": DEFAULT_TABLE_STROKE}, layout.properties)
    props = resolve_layout(layout_props, "table")
    columns = column_count(layout.properties, "table")
    styles = [
        ("border-collapse", "collapse"),
        ("width", "100%"),
        ("border", css_stroke(props.stroke) if props.stroke else None),
        ("background-color", _fill(props.fill)),
    ]
    parts = [_colgroup(props.columns)]
    header_rows = [
        tr for group in layout.headers
        for tr in _table_section(group.rows, [], columns, layout_props, options, "th")
    ]
    if header_rows:
        parts.append(f'<thead class="ash-header">{"".join(header_rows)}</thead>')
    body = _table_section(layout.rows, layout.cells, columns, layout_props, options, "td", layout.lines)
    parts.append(f"<tbody>{''.join(body)}</tbody>")
    logger.debug("Table body: %d row(s) on %d column(s), %d line(s)", len(body), columns, len(layout.lines))
    footer_rows = [
        tr for group in layout.footers
        for tr in _table_section(group.rows, [], columns, layout_props, options, "td")
    ]
    if footer_rows:
        parts.append(f'<tfoot class="ash-footer">{"".join(footer_rows)}</tfoot>')
    return f'<table class="ash-table"{_style_attr(styles)}>{"".join(parts)}</table>'


def _colgroup(columns: list[Any] | int | None) -> str:
    if not isinstance(columns, list) or not columns:
        return ""
    cols = "".join(f'<col{_style_attr([("width", css_track(t))])}>' for t in columns)
    return f"<colgroup>{cols}</colgroup>"


def _table_section(
    rows: list[Row],
    cells: list[Cell],
    columns: int,
    layout_props: dict,
    options: RenderOptions,
    tag: str,
    lines: list[Line] | None = None,
) -> list[str]:
    """One ``<tr>`` per row index of a positioned section.

    Each row is walked slot by slot: a cell anchored on the slot is emitted
    there, a slot covered by an earlier span is skipped and a free slot gets
    an empty cell, so every column keeps the position it was assigned.
    """
    anchored: dict[tuple[int, int], tuple[Cell, dict | None]] = {}
    row_nodes: dict[int, Row] = {}
    for row in rows:
        row_nodes[row.index] = row
        for cell in row.cells:
            anchored[cell.position] = (cell, row.properties)
    for cell in cells:
        anchored[cell.position] = (cell, None)
    covered = {slot for cell, _ in anchored.values() for slot in cell.occupied_positions()}
    height = max(
        [index + 1 for index in row_nodes] + [cell.position[1] + cell.rowspan for cell, _ in anchored.values()],
        default=0,
    )

    html_rows = []
    for index in range(height):
        row = row_nodes.get(index)
        parts = []
        col = 0
        while col < columns:
            if (col, index) in anchored:
                cell, row_props = anchored[(col, index)]
            elif (col, index) in covered:
                col += 1
                continue
            else:
                cell, row_props = Cell(position=(col, index)), row.properties if row is not None else None
            extra = _table_line_styles(lines or [], cell, columns, height)
            parts.append(_table_cell(cell, row_props, layout_props, options, tag, extra))
            col += cell.colspan
        html_rows.append(f"<tr{_row_style(row)}>{''.join(parts)}</tr>")
    return html_rows


def _row_style(row: Row | None) -> str:
    if row is None:
        return ""
    props = resolve_row(row)
    height = props.height.length if isinstance(props.height, FixedTrack) else None
    return _style_attr([("height", css_length(height) if height else None)])


def _overlaps(start: int, end: int, first: int, count: int) -> bool:
    return first < end and first + count > start


def _table_line_styles(lines: list[Line], cell: Cell, columns: int, rows: int) -> list[tuple[str, str | None]]:
    """Cell borders that draw the table's lines along the edges of this cell."""
    col, row = cell.position
    styles: list[tuple[str, str | None]] = []
    for line in lines:
        start = line.start or 0
        if line.orientation == "horizontal":
            end = columns if line.end is None else line.end
            if not _overlaps(start, end, col, cell.colspan):
                continue
            if line.position == row:
                styles.append(("border-top", _line_stroke(line)))
            elif line.position == row + cell.rowspan == rows:
                styles.append(("border-bottom", _line_stroke(line)))
        else:
            end = rows if line.end is None else line.end
            if not _overlaps(start, end, row, cell.rowspan):
                continue
            if line.position == col:
                styles.append(("border-left", _line_stroke(line)))
            elif line.position == col + cell.colspan == columns:
                styles.append(("border-right", _line_stroke(line)))
    return styles


def _table_cell(
    cell: Cell,
    row_props: dict | None,
    layout_props: dict,
    options: RenderOptions,
    tag: str,
    extra: list[tuple[str, str | None]] | None = None,
) -> str:
    resolved = resolve_cell(cell, row_props, layout_props)
    attrs = ""
    if cell.colspan > 1:
        attrs += f' colspan="{cell.colspan}"'
    if cell.rowspan > 1:
        attrs += f' rowspan="{cell.rowspan}"'
    styles = _cell_box_styles(resolved.effective, resolved.overrides) + (extra or [])
    return f"<{tag}{attrs}{_style_attr(styles)}>{_render_content(cell, options)}</{tag}>"


# ---------------------------------------------------------------------------
# Stack
# ---------------------------------------------------------------------------

def _render_stack(layout: StackLayout, options: RenderOptions) -> str:
    props = resolve_layout(layout.properties, "stack")
    spacing = props.spacing or props.gutter
    styles = [
        ("display", "flex"),
        ("flex-direction", _FLEX_DIRECTIONS[props.dir or "ttb"]),
        ("gap", css_length(spacing) if spacing else None),
        ("background-color", _fill(props.fill)),
    ]
    children = []
    for cell in layout.cells:
        resolved = resolve_cell(cell, None, layout.properties)
        cell_styles = [
            ("padding", css_length(resolved.effective.inset) if resolved.effective.inset else None),
            ("background-color", _fill(resolved.overrides.fill)),
            ("border", css_stroke(resolved.overrides.stroke) if resolved.overrides.stroke else None),
            ("text-align", _text_align(resolved.overrides.align)),
        ]
        children.append(f'<div class="ash-cell"{_style_attr(cell_styles)}>{_render_content(cell, options)}</div>')
    return f'<div class="ash-stack"{_style_attr(styles)}>{"".join(children)}</div>'


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

def _render_content(cell: Cell, options: RenderOptions) -> str:
    parts = []
    for item in cell.content:
        if isinstance(item, LabelContent):
            text = interpolate(item.text, options.data, options.locale, escape=html_escape)
            parts.append(f'<span class="ash-label"{_style_attr(_text_styles(resolve_style(item.style)))}>{text}</span>')
        elif isinstance(item, FieldContent):
            text = html_escape(field_text(item, options.data, options.locale, options.currency))
            parts.append(f'<span class="ash-field"{_style_attr(_text_styles(resolve_style(item.style)))}>{text}</span>')
        else:
            parts.append(render(item.layout, options))
    return "".join(parts)


def _text_styles(style: ResolvedStyle | None) -> list[tuple[str, str | None]]:
    if style is None:
        return []
    return [
        ("font-size", css_length(style.font_size) if style.font_size else None),
        ("font-weight", str(style.font_weight.numeric) if style.font_weight else None),
        ("font-style", style.font_style),
        ("color", css_paint(style.color) if style.color is not None else None),
        ("background-color", _fill(style.background_color)),
        ("font-family", sanitize_css(style.font_family) if style.font_family else None),
        ("text-align", style.text_align),
    ]
