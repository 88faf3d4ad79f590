from pathlib import Path

import pytest

from models.layout import Cell, FieldContent, Footer, GridLayout, Header, LabelContent, Row, TableLayout
from models.options import RenderData, RenderOptions
from settings import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a design.yaml that does not exist, so defaults apply."""
    return Settings(design_path=tmp_path / "design.yaml")


@pytest.fixture
def sample_data() -> dict:
    """Interpolation context shaped like the query layer's variables map."""
    return {
        "company": {"name": "Acme & Sons", "address": None},
        "report": {"title": "Quarterly Sales", "date": "2025-01-15"},
        "totals": {"revenue": 1234.56, "margin": 0.125, "orders": 4821},
        "x": "<script>",
    }


@pytest.fixture
def options(sample_data: dict) -> RenderOptions:
    return RenderOptions(data=sample_data, locale="en-US", currency="USD")


@pytest.fixture
def scenario_grid() -> GridLayout:
    """Two columns: one explicit cell at (1, 0) and three flow cells a, b, c."""
    return GridLayout(
        properties={"columns": 2},
        children=[
            Cell(position=(1, 0), content="explicit"),
            Cell(content="a"),
            Cell(content="b"),
            Cell(content="c"),
        ],
    )


@pytest.fixture
def invoice_table() -> TableLayout:
    """Two-column table with one header row, three body rows and one footer row."""
    return TableLayout(
        properties={"columns": ["2fr", "1fr"], "inset": "4pt"},
        headers=[Header(rows=[Row(cells=[Cell(content="Item"), Cell(content="Amount")])])],
        children=[
            Row(cells=[Cell(content="Widgets"), Cell(content=[FieldContent(source="totals.revenue", format="currency")])]),
            Row(cells=[Cell(content="Orders"), Cell(content=[FieldContent(source="totals.orders")])]),
            Row(cells=[Cell(content="Margin"), Cell(content=[FieldContent(source="totals.margin", format="percent")])]),
        ],
        footers=[Footer(rows=[Row(cells=[Cell(content=[LabelContent(text="Report for [company.name]")], span=(2, 1))])])],
    )


@pytest.fixture
def grouped_data() -> RenderData:
    """Sales records with two grouping levels (region, then product)."""
    return RenderData(
        records=[
            {"region": "North", "product": "Widget", "amount": 100},
            {"region": "South", "product": "Gadget", "amount": 250},
            {"region": "North", "product": "Gadget", "amount": 75},
            {"region": "North", "product": "Widget", "amount": 25},
        ],
        variables={"title": "Sales"},
        groups=[
            {"level": 2, "key": "product"},
            {"level": 1, "key": "region", "aggregates": {"North": {"total": 200, "count": 3}}},
        ],
    )
