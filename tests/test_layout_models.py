"""Tests for the layout IR models and the YAML/JSON layout loader."""
import pytest
from pydantic import ValidationError

from models.layout import (
    Cell,
    FieldContent,
    GridLayout,
    LabelContent,
    Line,
    NestedLayoutContent,
    Row,
    StackLayout,
    TableLayout,
    load_layouts,
    parse_layout,
    rectangle,
)


# ---------------------------------------------------------------------------
# Cells and content
# ---------------------------------------------------------------------------

class TestCell:
    def test_defaults(self):
        cell = Cell()
        assert cell.position is None
        assert cell.span == (1, 1)
        assert cell.content == []
        assert not cell.is_explicit

    def test_plain_string_content_becomes_label(self):
        cell = Cell(content="Total")
        assert cell.content == [LabelContent(text="Total")]

    def test_mixed_content_list(self):
        cell = Cell(content=["Revenue: ", {"source": "totals.revenue", "format": "currency"}])
        assert isinstance(cell.content[0], LabelContent)
        assert isinstance(cell.content[1], FieldContent)
        assert cell.content[1].source == ["totals", "revenue"]

    def test_nested_layout_content_from_dict(self):
        cell = Cell(content=[{"layout": {"type": "stack", "children": [{"content": "x"}]}}])
        assert isinstance(cell.content[0], NestedLayoutContent)
        assert isinstance(cell.content[0].layout, StackLayout)

    def test_negative_position_rejected(self):
        with pytest.raises(ValidationError):
            Cell(position=(-1, 0))

    def test_zero_span_rejected(self):
        with pytest.raises(ValidationError):
            Cell(span=(0, 1))

    def test_span_accessors(self):
        cell = Cell(span=(3, 2))
        assert cell.colspan == 3
        assert cell.rowspan == 2

    def test_occupied_positions(self):
        cell = Cell(position=(1, 0), span=(2, 2))
        assert cell.occupied_positions() == [(1, 0), (2, 0), (1, 1), (2, 1)]

    def test_flow_cell_has_no_occupied_positions(self):
        with pytest.raises(ValueError):
            Cell().occupied_positions()

    def test_cells_are_immutable(self):
        cell = Cell(content="a")
        with pytest.raises(ValidationError):
            cell.position = (0, 0)


class TestFieldContent:
    def test_source_list_items_become_strings(self):
        field = FieldContent(source=["items", 0, "name"])
        assert field.source == ["items", "0", "name"]

    def test_dotted_source_string_is_split(self):
        assert FieldContent(source="company.address.city").source == ["company", "address", "city"]
        assert FieldContent(source="total").source == ["total"]

    def test_empty_source_rejected(self):
        with pytest.raises(ValidationError):
            FieldContent(source=[])

    def test_decimal_places_bounds(self):
        with pytest.raises(ValidationError):
            FieldContent(source="x", decimal_places=16)

    def test_unknown_format_rejected(self):
        with pytest.raises(ValidationError):
            FieldContent(source="x", format="roman")


def test_rectangle_is_row_major():
    assert rectangle((0, 0), (2, 1)) == [(0, 0), (1, 0)]
    assert rectangle((2, 3), (1, 2)) == [(2, 3), (2, 4)]


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

class TestLayouts:
    def test_children_split_into_cells_and_rows(self):
        grid = GridLayout(children=[Cell(), Cell()])
        assert len(grid.cells) == 2
        assert grid.rows == []

    def test_dict_with_cells_is_a_row(self):
        table = parse_layout({
            "type": "table",
            "properties": {"columns": 2},
            "children": [{"cells": ["a", "b"]}],
        })
        assert isinstance(table, TableLayout)
        assert isinstance(table.children[0], Row)
        assert table.children[0].cells[1].content[0].text == "b"

    def test_parse_header_and_footer(self):
        table = parse_layout({
            "type": "table",
            "properties": {"columns": 1},
            "headers": [{"rows": [{"cells": ["H"]}], "repeat": False}],
            "footers": [{"rows": [{"cells": ["F"]}]}],
        })
        assert table.headers[0].repeat is False
        assert table.footers[0].repeat is True

    def test_parse_lines(self):
        grid = parse_layout({
            "type": "grid",
            "lines": [{"orientation": "horizontal", "position": 1, "stroke": "1pt red"}],
        })
        assert grid.lines == [Line(orientation="horizontal", position=1, stroke="1pt red")]

    def test_unknown_layout_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_layout({"type": "carousel"})

    def test_python_construction_of_nested_layouts(self):
        inner = StackLayout(children=[Cell(content="inner")])
        outer = GridLayout(children=[Cell(content=[NestedLayoutContent(layout=inner)])])
        assert outer.cells[0].content[0].layout == inner


class TestLoadLayouts:
    def test_single_layout(self, tmp_path):
        path = tmp_path / "layout.yaml"
        path.write_text(
            "type: grid\nproperties:\n  columns: [1fr, 2fr]\nchildren:\n  - content: Hello\n",
            encoding="utf-8",
        )
        layouts = load_layouts(path)
        assert len(layouts) == 1
        assert layouts[0].properties["columns"] == ["1fr", "2fr"]

    def test_layouts_key(self, tmp_path):
        path = tmp_path / "layouts.yaml"
        path.write_text(
            "layouts:\n  - type: grid\n  - type: stack\n",
            encoding="utf-8",
        )
        layouts = load_layouts(path)
        assert [layout.type for layout in layouts] == ["grid", "stack"]

    def test_json_file(self, tmp_path):
        path = tmp_path / "layout.json"
        path.write_text('[{"type": "table", "properties": {"columns": 2}}]', encoding="utf-8")
        assert isinstance(load_layouts(path)[0], TableLayout)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_layouts(tmp_path / "nope.yaml")
