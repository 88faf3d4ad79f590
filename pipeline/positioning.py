"""Positioning engine: give every cell a concrete (column, row) anchor.

Explicit cells (an authored ``position``) are placed first and always win;
flow cells (``position=None``) then fill the free slots in row-major order,
keeping their source order.  Row containers number their rows sequentially
and fill each row left to right, skipping slots blocked by a rowspan from an
earlier row.

Each placement call owns its occupancy map (slot -> anchor of the cell
covering it).  The map never leaves the call: callers get new cells back and
the input tree is left untouched.
"""
import logging
from typing import Any

from models.layout import (
    Cell,
    NestedLayoutContent,
    Position,
    Row,
    Span,
    StackLayout,
    TableLayout,
    rectangle,
)
from models.result import Notice
from pipeline.errors import (
    InvalidNestingError,
    InvalidPositionError,
    InvalidPropertyError,
    MissingRequiredPropertyError,
    NestingTooDeepError,
    PositionConflictError,
    PropertyValueError,
    SpanOverflowError,
)
from pipeline.properties import parse_tracks

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 16

Occupancy = dict[Position, Position]


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def column_count(properties: dict[str, Any], node: str = "layout") -> int:
    """Number of columns declared by a layout: list length, integer, or 1 when absent."""
    columns = properties.get("columns")
    if columns is None:
        return 1
    try:
        tracks = parse_tracks(columns)
    except PropertyValueError as exc:
        raise InvalidPropertyError(node, "columns", columns, "a column count or list of track sizes") from exc
    if isinstance(tracks, int):
        return tracks
    if not tracks:
        raise InvalidPropertyError(node, "columns", columns, "at least one track")
    return len(tracks)


def occupied_positions(position: Position, span: Span) -> list[Position]:
    return rectangle(position, span)


def validate_span(position: Position, span: Span, columns: int) -> None:
    if position[0] + span[0] > columns:
        raise SpanOverflowError(position, span, columns)


def _claim(occupied: Occupancy, anchor: Position, span: Span, columns: int) -> None:
    validate_span(anchor, span, columns)
    slots = occupied_positions(anchor, span)
    for slot in slots:
        if slot in occupied:
            raise PositionConflictError(anchor, occupied[slot])
    occupied.update(dict.fromkeys(slots, anchor))


def _sorted_by_anchor(cells: list[Cell]) -> list[Cell]:
    return sorted(cells, key=lambda c: (c.position[1], c.position[0]))


# ---------------------------------------------------------------------------
# Cell placement
# ---------------------------------------------------------------------------

def _next_flow_slot(occupied: Occupancy, cursor: Position, span: Span, columns: int) -> Position:
    col, row = cursor
    while True:
        if col + span[0] > columns:
            col, row = 0, row + 1
            continue
        if all(slot not in occupied for slot in occupied_positions((col, row), span)):
            return col, row
        col += 1


def position_cells(cells: list[Cell], columns: int) -> list[Cell]:
    """Place explicit cells, then flow cells.  Returns cells ordered by (row, column)."""
    explicit = [c for c in cells if c.is_explicit]
    flow = [c for c in cells if not c.is_explicit]

    occupied: Occupancy = {}
    for cell in explicit:
        _claim(occupied, cell.position, cell.span, columns)

    placed_flow: list[Cell] = []
    cursor: Position = (0, 0)
    for cell in flow:
        if cell.colspan > columns:
            raise SpanOverflowError(cursor, cell.span, columns)
        anchor = _next_flow_slot(occupied, cursor, cell.span, columns)
        _claim(occupied, anchor, cell.span, columns)
        placed_flow.append(cell.model_copy(update={"position": anchor}))
        next_col = anchor[0] + cell.colspan
        cursor = (next_col, anchor[1]) if next_col < columns else (0, anchor[1] + 1)

    logger.debug("Placed %d explicit and %d flow cells on %d columns", len(explicit), len(flow), columns)
    return _sorted_by_anchor(explicit + placed_flow)


def position_rows(rows: list[Row], columns: int, start_index: int = 0) -> list[Row]:
    """Number rows sequentially and fill each one left to right.

    A rowspan from an earlier row blocks its columns in later rows; cells that
    would land there shift to the next free column.  A cell with an authored
    position keeps its column, its row always comes from the row index.
    """
    occupied: Occupancy = {}
    placed_rows: list[Row] = []
    for offset, row in enumerate(rows):
        index = start_index + offset
        col = 0
        placed: list[Cell] = []
        for cell in row.cells:
            if cell.position is not None:
                col = cell.position[0]
            else:
                while (col, index) in occupied:
                    col += 1
            _claim(occupied, (col, index), cell.span, columns)
            placed.append(cell.model_copy(update={"position": (col, index)}))
            col += cell.colspan
        placed_rows.append(row.model_copy(update={"index": index, "cells": placed}))
    return placed_rows


def _position_stack(cells: list[Cell], direction: str | None) -> list[Cell]:
    horizontal = direction in ("ltr", "rtl")
    return [
        cell.model_copy(update={"position": (i, 0) if horizontal else (0, i)})
        for i, cell in enumerate(cells)
    ]


# ---------------------------------------------------------------------------
# Whole layouts
# ---------------------------------------------------------------------------

def position_layout(layout: Any, max_depth: int = DEFAULT_MAX_DEPTH, _depth: int = 0) -> Any:
    """Return a copy of layout (and every nested layout) with all cells placed.

    Raises InvalidNestingError for rows in a stack, mixed cells and rows, or
    nesting deeper than max_depth; MissingRequiredPropertyError for a table
    with rows but no columns; SpanOverflowError / PositionConflictError for
    geometric violations.
    """
    if _depth > max_depth:
        raise NestingTooDeepError(_depth, max_depth)

    node = layout.type
    cells = layout.cells
    rows = layout.rows
    if cells and rows:
        raise InvalidNestingError(node, "row", f"{node} mixes cells and rows in its children")
    if rows and isinstance(layout, StackLayout):
        raise InvalidNestingError("stack", "row")

    update: dict[str, Any] = {}
    if isinstance(layout, StackLayout):
        direction = str(layout.properties.get("dir", layout.properties.get("direction", "ttb")))
        placed_cells = _position_stack(cells, direction)
        update["children"] = [_position_nested(c, max_depth, _depth) for c in placed_cells]
        return layout.model_copy(update=update)

    if isinstance(layout, TableLayout):
        has_rows = bool(rows) or any(g.rows for g in [*layout.headers, *layout.footers])
        if has_rows and "columns" not in layout.properties:
            raise MissingRequiredPropertyError("table", "columns")
    columns = column_count(layout.properties, node)

    if rows:
        children = [
            r.model_copy(update={"cells": [_position_nested(c, max_depth, _depth) for c in r.cells]})
            for r in position_rows(rows, columns)
        ]
    else:
        children = [_position_nested(c, max_depth, _depth) for c in position_cells(cells, columns)]
    update["children"] = children

    if isinstance(layout, TableLayout):
        update["headers"] = [_position_group(g, columns, max_depth, _depth) for g in layout.headers]
        update["footers"] = [_position_group(g, columns, max_depth, _depth) for g in layout.footers]

    _validate_lines(layout, columns, _row_extent(children, layout.properties))
    return layout.model_copy(update=update)


def _position_group(group: Any, columns: int, max_depth: int, depth: int) -> Any:
    rows = [
        r.model_copy(update={"cells": [_position_nested(c, max_depth, depth) for c in r.cells]})
        for r in position_rows(group.rows, columns)
    ]
    return group.model_copy(update={"rows": rows})


def _position_nested(cell: Cell, max_depth: int, depth: int) -> Cell:
    if not any(isinstance(item, NestedLayoutContent) for item in cell.content):
        return cell
    content = [
        item.model_copy(update={"layout": position_layout(item.layout, max_depth, depth + 1)})
        if isinstance(item, NestedLayoutContent) else item
        for item in cell.content
    ]
    return cell.model_copy(update={"content": content})


def _placed_cells(children: list[Any]) -> list[Cell]:
    cells: list[Cell] = []
    for child in children:
        cells.extend(child.cells if isinstance(child, Row) else [child])
    return cells


def _row_extent(children: list[Any], properties: dict[str, Any]) -> int:
    extent = max((c.position[1] + c.rowspan for c in _placed_cells(children)), default=0)
    declared = properties.get("rows")
    if isinstance(declared, int) and not isinstance(declared, bool):
        extent = max(extent, declared)
    elif isinstance(declared, (list, tuple)):
        extent = max(extent, len(declared))
    return extent


def _validate_lines(layout: Any, columns: int, rows: int) -> None:
    for line in layout.lines:
        limit = columns if line.orientation == "vertical" else rows
        if line.position > limit:
            raise InvalidPositionError(line.position, (0, limit))
        if line.start is not None and line.end is not None and line.start > line.end:
            raise InvalidPositionError((line.start, line.end), "start <= end")


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------

def find_gaps(cells: list[Cell], columns: int) -> list[Notice]:
    """Unoccupied slots inside the rows the placed cells use (informational only)."""
    taken: set[Position] = set()
    for cell in cells:
        taken.update(cell.occupied_positions())
    height = max((r + 1 for _, r in taken), default=0)
    return [
        Notice(message=f"No cell occupies ({col}, {row})", position=(col, row))
        for row in range(height)
        for col in range(columns)
        if (col, row) not in taken
    ]


def layout_gaps(layout: Any) -> list[Notice]:
    """Gap notices for a positioned grid or table and every layout nested inside it."""
    notices: list[Notice] = []
    cells = _placed_cells(layout.children)
    if not isinstance(layout, StackLayout):
        notices.extend(find_gaps(cells, column_count(layout.properties, layout.type)))
    for cell in cells:
        for item in cell.content:
            if isinstance(item, NestedLayoutContent):
                notices.extend(layout_gaps(item.layout))
    for notice in notices:
        logger.debug("grid_gap: %s", notice.message)
    return notices
