"""Tests for the JSON backend: layout serialization, records, groups and streaming."""
import json
from datetime import date
from decimal import Decimal

import pytest

from models.layout import Cell, FieldContent, GridLayout, LabelContent, Line, NestedLayoutContent, StackLayout, Style
from models.options import RenderData, RenderOptions
from pipeline import render_json
from pipeline.errors import StructuralEncodeError
from pipeline.positioning import position_layout


def _serialize(layout, options=None) -> dict:
    return json.loads(render_json.render(position_layout(layout), options or RenderOptions()))


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class TestEncode:
    def test_extended_types(self):
        encoded = render_json.encode({"d": date(2025, 1, 15), "n": Decimal("1.5"), "s": {"b", "a"}})
        assert json.loads(encoded) == {"d": "2025-01-15", "n": 1.5, "s": ["a", "b"]}

    def test_callables_become_sentinel(self):
        assert json.loads(render_json.encode({"fill": lambda ctx: "red"})) == {"fill": "__function__"}

    def test_non_ascii_kept(self):
        assert render_json.encode({"c": "1.234,56 €"}) == '{"c": "1.234,56 €"}'

    def test_pretty(self):
        assert render_json.encode({"a": 1}, pretty=True) == '{\n  "a": 1\n}'

    def test_unsupported_value(self):
        with pytest.raises(StructuralEncodeError) as exc_info:
            render_json.encode({"x": object()})
        assert exc_info.value.code == "structural_encode_failure"
        assert exc_info.value.context["value_type"] == "object"

    def test_nan_rejected(self):
        with pytest.raises(StructuralEncodeError):
            render_json.encode({"x": float("nan")})


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

class TestSerializeLayout:
    def test_grid(self, scenario_grid):
        data = _serialize(scenario_grid)
        assert data["type"] == "grid"
        assert data["properties"] == {"columns": 2}
        assert [c["position"] for c in data["children"]] == [[0, 0], [1, 0], [0, 1], [1, 1]]
        assert data["children"][0] == {
            "type": "cell",
            "position": [0, 0],
            "span": [1, 1],
            "properties": {},
            "content": [{"type": "label", "text": "a"}],
        }
        assert data["lines"] == []
        assert "headers" not in data

    def test_table_round_trip_keeps_sections_and_order(self, invoice_table, options):
        data = json.loads(render_json.render(position_layout(invoice_table), options))
        assert list(data) == ["type", "properties", "headers", "children", "footers", "lines"]
        assert [len(g["rows"]) for g in data["headers"]] == [1]
        assert [len(r["cells"]) for r in data["children"]] == [2, 2, 2]
        assert [len(g["rows"]) for g in data["footers"]] == [1]
        assert [r["index"] for r in data["children"]] == [0, 1, 2]
        assert [r["cells"][0]["content"][0]["text"] for r in data["children"]] == ["Widgets", "Orders", "Margin"]
        assert data["headers"][0]["rows"][0]["cells"][1]["content"][0]["text"] == "Amount"
        assert data["footers"][0]["repeat"] is True

    def test_field_keeps_raw_value(self, invoice_table, options):
        data = json.loads(render_json.render(position_layout(invoice_table), options))
        field = data["children"][0]["cells"][1]["content"][0]
        assert field == {
            "type": "field",
            "source": ["totals", "revenue"],
            "value": 1234.56,
            "text": "$1,234.56",
            "format": "currency",
        }

    def test_label_keeps_template(self, invoice_table, options):
        data = json.loads(render_json.render(position_layout(invoice_table), options))
        label = data["footers"][0]["rows"][0]["cells"][0]["content"][0]
        assert label == {"type": "label", "text": "Report for Acme & Sons", "template": "Report for [company.name]"}

    def test_values_not_escaped(self, options):
        data = _serialize(GridLayout(children=[Cell(content="[x]")]), options)
        assert data["children"][0]["content"][0]["text"] == "<script>"

    def test_missing_field(self):
        data = _serialize(GridLayout(children=[Cell(content=[FieldContent(source="a.b")])]))
        assert data["children"][0]["content"][0]["value"] is None
        assert data["children"][0]["content"][0]["text"] == "[a.b]"

    def test_function_property_sentinel(self):
        grid = GridLayout(properties={"fill": lambda ctx: "red"}, children=[Cell()])
        assert _serialize(grid)["properties"] == {"fill": "__function__"}

    def test_style_and_lines(self):
        grid = GridLayout(
            properties={"columns": 1},
            children=[Cell(content=[LabelContent(text="T", style=Style(font_weight="bold"))])],
            lines=[Line(orientation="horizontal", position=1, stroke="1pt")],
        )
        data = _serialize(grid)
        assert data["children"][0]["content"][0]["style"] == {"font_weight": "bold"}
        assert data["lines"] == [{"type": "line", "orientation": "horizontal", "position": 1, "stroke": "1pt"}]

    def test_nested_layout(self):
        inner = StackLayout(children=[Cell(content="x")])
        data = _serialize(GridLayout(children=[Cell(content=[NestedLayoutContent(layout=inner)])]))
        nested = data["children"][0]["content"][0]
        assert nested["type"] == "nested_layout"
        assert nested["layout"]["type"] == "stack"
        assert nested["layout"]["children"][0]["position"] == [0, 0]

    def test_render_all(self):
        layouts = [position_layout(GridLayout()), position_layout(StackLayout())]
        data = json.loads(render_json.render_all(layouts, RenderOptions()))
        assert [layout["type"] for layout in data["layouts"]] == ["grid", "stack"]


# ---------------------------------------------------------------------------
# Records and groups
# ---------------------------------------------------------------------------

class TestRecords:
    def test_plain_records(self):
        data = RenderData(records=[{"a": 1}, {"a": 2}])
        assert json.loads(render_json.render_records(data, RenderOptions())) == {"records": [{"a": 1}, {"a": 2}]}

    def test_groups_nest_by_level(self, grouped_data):
        groups = json.loads(render_json.render_records(grouped_data, RenderOptions()))["records"]
        assert [g["group_value"] for g in groups] == ["North", "South"]
        assert {g["group_level"] for g in groups} == {1}
        north, south = groups
        assert north["aggregates"] == {"total": 200, "count": 3}
        assert south["aggregates"] == {"count": 1}
        assert [g["group_value"] for g in north["records"]] == ["Widget", "Gadget"]
        assert north["records"][0]["group_level"] == 2
        assert [r["amount"] for r in north["records"][0]["records"]] == [100, 25]
        assert north["records"][0]["aggregates"] == {"count": 2}

    def test_aggregates_by_path(self):
        data = RenderData(
            records=[{"r": "N", "p": "W"}],
            groups=[
                {"level": 1, "key": "r"},
                {"level": 2, "key": "p", "aggregates": {"N/W": {"sum": 9}}},
            ],
        )
        groups = render_json.records_payload(data)
        assert groups[0]["records"][0]["aggregates"] == {"sum": 9}

    def test_missing_group_key_is_null(self):
        data = RenderData(records=[{"a": 1}], groups=[{"level": 1, "key": "region"}])
        assert render_json.records_payload(data)[0]["group_value"] is None


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class TestStreaming:
    def test_chunks_concatenate_to_document(self):
        data = RenderData(records=[{"i": i} for i in range(5)])
        chunks = list(render_json.stream_records(data, RenderOptions(chunk_size=2)))
        assert len(chunks) == 5
        assert json.loads("".join(chunks)) == {"records": [{"i": i} for i in range(5)]}

    def test_empty_stream(self):
        chunks = list(render_json.stream_records(RenderData(), RenderOptions()))
        assert json.loads("".join(chunks)) == {"records": []}

    def test_grouped_stream(self, grouped_data):
        streamed = json.loads("".join(render_json.stream_records(grouped_data, RenderOptions(chunk_size=1))))
        assert streamed == json.loads(render_json.render_records(grouped_data, RenderOptions()))

    def test_stream_is_lazy(self):
        data = RenderData(records=[{"a": 1}, {"a": object()}])
        stream = render_json.stream_records(data, RenderOptions(chunk_size=1))
        assert next(stream) == '{"records": ['
        assert next(stream) == '{"a": 1}'
        with pytest.raises(StructuralEncodeError):
            next(stream)

    def test_stream_layouts(self, scenario_grid):
        layouts = [position_layout(scenario_grid), position_layout(StackLayout())]
        streamed = json.loads("".join(render_json.stream_layouts(layouts, RenderOptions(chunk_size=1))))
        assert streamed == json.loads(render_json.render_all(layouts, RenderOptions()))
