"""JSON backend: structural serialization of the layout tree, batches and records.

Unlike the text backends this one keeps raw values: a field carries its
resolved ``value`` and ``source`` path next to the formatted ``text``, and
properties are emitted as authored (function-valued ones as the sentinel
``"__function__"``).

Call modes:
  * one layout            -> the layout object itself
  * a list of layouts     -> ``{"layouts": [...]}``
  * records (and groups)  -> ``{"records": [...]}``, groups nested as
                             ``{group_value, group_level, aggregates, records}``

``stream_records`` / ``stream_layouts`` yield the same documents as a lazy
sequence of chunks; the consumer pulls each chunk and may stop at any time.
"""
import json
import logging
from collections.abc import Iterator
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from models.layout import Cell, FieldContent, GridLayout, LabelContent, Line, Row, StackLayout, Style, TableLayout
from models.options import GroupSpec, RenderData, RenderOptions
from pipeline.errors import StructuralEncodeError
from pipeline.interpolation import MISSING, field_text, field_value, has_placeholders, interpolate, resolve_path

logger = logging.getLogger(__name__)

FUNCTION_SENTINEL = "__function__"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if callable(value):
        return FUNCTION_SENTINEL
    raise StructuralEncodeError(value)


def encode(obj: Any, pretty: bool = False) -> str:
    """Serialize to a JSON string; raises StructuralEncodeError for unsupported values."""
    try:
        return json.dumps(
            obj,
            default=_default,
            ensure_ascii=False,
            allow_nan=False,
            indent=2 if pretty else None,
        )
    except ValueError as exc:
        raise StructuralEncodeError(obj) from exc


# ---------------------------------------------------------------------------
# Layout serialization
# ---------------------------------------------------------------------------

def _property_value(value: Any) -> Any:
    if callable(value):
        return FUNCTION_SENTINEL
    if isinstance(value, tuple):
        return [_property_value(v) for v in value]
    if isinstance(value, list):
        return [_property_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _property_value(v) for k, v in value.items()}
    return value


def serialize_properties(properties: dict[str, Any]) -> dict[str, Any]:
    return {str(key): _property_value(value) for key, value in properties.items()}


def serialize_style(style: Style | None) -> dict[str, Any] | None:
    if style is None or style.is_empty():
        return None
    return style.model_dump(exclude_none=True)


def serialize(layout: Any, options: RenderOptions) -> dict[str, Any]:
    """Plain nested structure for one layout (dispatches on the layout kind)."""
    if not isinstance(layout, (GridLayout, TableLayout, StackLayout)):
        raise TypeError(f"Unknown layout node {type(layout).__name__}")
    result: dict[str, Any] = {"type": layout.type, "properties": serialize_properties(layout.properties)}
    # document order for tables: headers, body, footers
    if isinstance(layout, TableLayout):
        result["headers"] = [_serialize_group(g, options) for g in layout.headers]
    result["children"] = [_serialize_child(child, options) for child in layout.children]
    if isinstance(layout, TableLayout):
        result["footers"] = [_serialize_group(g, options) for g in layout.footers]
    result["lines"] = [serialize_line(line) for line in layout.lines]
    return result


def _serialize_child(child: Cell | Row, options: RenderOptions) -> dict[str, Any]:
    if isinstance(child, Row):
        return serialize_row(child, options)
    return serialize_cell(child, options)


def serialize_row(row: Row, options: RenderOptions) -> dict[str, Any]:
    return {
        "type": "row",
        "index": row.index,
        "properties": serialize_properties(row.properties),
        "cells": [serialize_cell(cell, options) for cell in row.cells],
    }


def _serialize_group(group: Any, options: RenderOptions) -> dict[str, Any]:
    return {
        "type": group.type,
        "repeat": group.repeat,
        "rows": [serialize_row(row, options) for row in group.rows],
    }


def serialize_cell(cell: Cell, options: RenderOptions) -> dict[str, Any]:
    return {
        "type": "cell",
        "position": list(cell.position) if cell.position is not None else None,
        "span": list(cell.span),
        "properties": serialize_properties(cell.properties),
        "content": [_serialize_content(item, options) for item in cell.content],
    }


def _serialize_content(item: Any, options: RenderOptions) -> dict[str, Any]:
    if isinstance(item, LabelContent):
        result: dict[str, Any] = {"type": "label", "text": interpolate(item.text, options.data, options.locale)}
        if has_placeholders(item.text):
            result["template"] = item.text
    elif isinstance(item, FieldContent):
        result = {
            "type": "field",
            "source": list(item.source),
            "value": field_value(item, options.data),
            "text": field_text(item, options.data, options.locale, options.currency),
        }
        if item.format is not None:
            result["format"] = item.format
        if item.decimal_places is not None:
            result["decimal_places"] = item.decimal_places
        if item.currency is not None:
            result["currency"] = item.currency
    else:
        return {"type": "nested_layout", "layout": serialize(item.layout, options)}
    style = serialize_style(item.style)
    if style is not None:
        result["style"] = style
    return result


def serialize_line(line: Line) -> dict[str, Any]:
    result: dict[str, Any] = {"type": "line", "orientation": line.orientation, "position": line.position}
    if line.start is not None:
        result["start"] = line.start
    if line.end is not None:
        result["end"] = line.end
    if line.stroke is not None:
        result["stroke"] = _property_value(line.stroke)
    return result


def render(layout: Any, options: RenderOptions) -> str:
    return encode(serialize(layout, options), options.pretty)


def render_all(layouts: list[Any], options: RenderOptions) -> str:
    return encode({"layouts": [serialize(layout, options) for layout in layouts]}, options.pretty)


# ---------------------------------------------------------------------------
# Records and groups
# ---------------------------------------------------------------------------

def _aggregates_for(spec: GroupSpec, path: tuple[Any, ...], records: list[dict[str, Any]]) -> dict[str, Any]:
    """Pre-computed aggregates by "outer/inner" path, then by the bare value; a count otherwise."""
    for key in ("/".join(str(v) for v in path), str(path[-1])):
        if key in spec.aggregates:
            return spec.aggregates[key]
    return {"count": len(records)}


def build_groups(
    records: list[dict[str, Any]],
    specs: list[GroupSpec],
    path: tuple[Any, ...] = (),
) -> list[dict[str, Any]]:
    """Nest records by each group level in turn, keeping first-appearance order."""
    spec, rest = specs[0], specs[1:]
    buckets: dict[Any, list[dict[str, Any]]] = {}
    values: dict[Any, Any] = {}
    for record in records:
        value = resolve_path(record, spec.key)
        value = None if value is MISSING else value
        bucket_key = _bucket_key(value)
        values.setdefault(bucket_key, value)
        buckets.setdefault(bucket_key, []).append(record)

    groups = []
    for bucket_key, members in buckets.items():
        value = values[bucket_key]
        group_path = (*path, value)
        groups.append({
            "group_value": value,
            "group_level": spec.level,
            "aggregates": _aggregates_for(spec, group_path, members),
            "records": build_groups(members, rest, group_path) if rest else members,
        })
    return groups


def _bucket_key(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def records_payload(data: RenderData) -> list[dict[str, Any]]:
    specs = data.ordered_groups()
    if not specs:
        return list(data.records)
    return build_groups(list(data.records), specs)


def render_records(data: RenderData, options: RenderOptions) -> str:
    return encode({"records": records_payload(data)}, options.pretty)


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

def _stream_array(key: str, items: Iterator[Any], chunk_size: int) -> Iterator[str]:
    yield f'{{"{key}": ['
    first = True
    batch: list[str] = []
    for item in items:
        batch.append(encode(item))
        if len(batch) >= chunk_size:
            yield ("" if first else ", ") + ", ".join(batch)
            first = False
            batch = []
    if batch:
        yield ("" if first else ", ") + ", ".join(batch)
    yield "]}"


def stream_records(data: RenderData, options: RenderOptions) -> Iterator[str]:
    """Lazily yield ``{"records": [...]}`` in chunks of ``options.chunk_size`` items."""
    items = iter(records_payload(data)) if data.groups else iter(data.records)
    logger.debug("Streaming records in chunks of %d", options.chunk_size)
    return _stream_array("records", items, options.chunk_size)


def stream_layouts(layouts: list[Any], options: RenderOptions) -> Iterator[str]:
    """Lazily yield ``{"layouts": [...]}``; each layout is serialized only when pulled."""
    items = (serialize(layout, options) for layout in layouts)
    return _stream_array("layouts", items, options.chunk_size)
