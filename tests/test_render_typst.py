"""Tests for the Typst markup backend."""
from models.design import DocumentDesign, FontSetup, PageSetup
from models.layout import (
    Cell,
    FieldContent,
    Footer,
    GridLayout,
    Header,
    LabelContent,
    Line,
    NestedLayoutContent,
    Row,
    StackLayout,
    Style,
    TableLayout,
)
from models.options import RenderOptions
from models.properties import Length, NoPaint, NoStroke, Paint, Stroke
from pipeline import render_typst
from pipeline.positioning import position_layout


def _render(layout, options=None) -> str:
    return render_typst.render(position_layout(layout), options or RenderOptions())


# ---------------------------------------------------------------------------
# Value mapping
# ---------------------------------------------------------------------------

class TestValues:
    def test_escape_markup(self):
        assert render_typst.escape_markup("#1 *bold* [x] $5 @ref") == "\\#1 \\*bold\\* \\[x\\] \\$5 \\@ref"

    def test_slashes_cannot_open_comments(self):
        assert render_typst.escape_markup("https://acme.com /* x */") == "https:\\/\\/acme.com \\/\\* x \\*\\/"

    def test_html_specials_untouched(self):
        assert render_typst.escape_markup("<script>&") == "<script>&"

    def test_paint(self):
        assert render_typst.typst_paint(Paint(kind="hex", value="#ff0000")) == 'rgb("#ff0000")'
        assert render_typst.typst_paint(Paint(kind="named", value="grey")) == "gray"
        assert render_typst.typst_paint(NoPaint()) == "none"

    def test_stroke(self):
        assert render_typst.typst_stroke(Stroke()) == "1pt"
        assert render_typst.typst_stroke(Stroke(paint=Paint(kind="named", value="red"))) == "1pt + red"
        assert render_typst.typst_stroke(Stroke(thickness=Length(value=2), dash="dashed")) == '(thickness: 2pt, dash: "dashed")'
        assert render_typst.typst_stroke(NoStroke()) == "none"

    def test_px_becomes_pt(self):
        assert render_typst.typst_length(Length(value=3, unit="px")) == "3pt"
        assert render_typst.typst_length(Length(value=2.5, unit="cm")) == "2.5cm"


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------

class TestGrid:
    def test_auto_placed_cells_have_no_coordinates(self, scenario_grid):
        assert _render(scenario_grid) == (
            "#grid(\n"
            "  columns: 2,\n"
            "  [a],\n"
            "  [explicit],\n"
            "  [b],\n"
            "  [c],\n"
            ")"
        )

    def test_explicit_coordinates_when_needed(self):
        grid = GridLayout(properties={"columns": 2}, children=[Cell(position=(1, 1), content="E"), Cell(content="a")])
        output = _render(grid)
        assert "  [a],\n" in output
        assert "  grid.cell(x: 1, y: 1)[E],\n" in output

    def test_parameters_in_order(self):
        grid = GridLayout(properties={
            "columns": ["1fr", "2fr"],
            "rows": ["auto"],
            "gutter": "4pt",
            "align": "center",
            "inset": "2pt",
            "fill": "#EEE",
            "stroke": "0.5pt",
        })
        assert _render(grid) == (
            "#grid(\n"
            "  columns: (1fr, 2fr),\n"
            "  rows: (auto,),\n"
            "  gutter: 4pt,\n"
            "  align: center,\n"
            "  inset: 2pt,\n"
            '  fill: rgb("#eee"),\n'
            "  stroke: 0.5pt,\n"
            ")"
        )

    def test_minmax_and_content_tracks(self):
        grid = GridLayout(properties={"columns": ["minmax(2cm, 1fr)", "min-content", "fit-content(3cm)"]})
        assert "columns: (1fr, auto, auto)," in _render(grid)

    def test_cell_parameters(self):
        grid = GridLayout(
            properties={"columns": 3},
            children=[Cell(span=(2, 1), properties={"fill": "red", "align": "right + top", "breakable": False}, content="x")],
        )
        assert "  grid.cell(colspan: 2, align: end + top, fill: red, breakable: false)[x],\n" in _render(grid)

    def test_lines(self):
        grid = GridLayout(
            properties={"columns": 2},
            children=[Cell(), Cell()],
            lines=[
                Line(orientation="horizontal", position=1, stroke="2pt red"),
                Line(orientation="vertical", position=1, start=0, end=1),
            ],
        )
        output = _render(grid)
        assert "  grid.hline(y: 1, stroke: 2pt + red),\n" in output
        assert "  grid.vline(x: 1, start: 0, end: 1),\n" in output

    def test_empty_grid(self):
        assert _render(GridLayout()) == "#grid()"


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class TestTable:
    def test_invoice(self, invoice_table, options):
        output = _render(invoice_table, options)
        assert output.startswith("#table(\n  columns: (2fr, 1fr),\n  inset: 4pt,\n  stroke: 1pt,\n")
        assert "  table.header(\n    [Item],\n    [Amount],\n  ),\n" in output
        assert "  [\\$1,234.56],\n" in output
        assert "  [4821],\n" in output
        assert "  table.footer(\n    table.cell(colspan: 2)[Report for Acme & Sons],\n  ),\n" in output
        assert output.index("table.header") < output.index("[Widgets]") < output.index("table.footer")

    def test_header_without_repeat(self):
        table = TableLayout(
            properties={"columns": 1},
            headers=[Header(rows=[Row(cells=[Cell(content="H")])], repeat=False)],
            footers=[Footer(rows=[Row(cells=[Cell(content="F")])])],
        )
        output = _render(table)
        assert "  table.header(\n    repeat: false,\n    [H],\n  ),\n" in output
        assert "  table.footer(\n    [F],\n  ),\n" in output

    def test_body_and_footer_coordinates_count_header_rows(self):
        table = TableLayout(
            properties={"columns": 2},
            headers=[Header(rows=[Row(cells=[Cell(content="H1"), Cell(content="H2")])])],
            children=[Row(cells=[Cell(position=(1, 0), content="B")])],
            footers=[Footer(rows=[Row(cells=[Cell(position=(1, 0), content="F")])])],
        )
        output = _render(table)
        assert "  table.cell(x: 1, y: 1)[B],\n" in output
        assert "    table.cell(x: 1, y: 2)[F],\n" in output
        assert "    [H1],\n    [H2],\n" in output


# ---------------------------------------------------------------------------
# Stack and content
# ---------------------------------------------------------------------------

class TestStack:
    def test_direction_and_spacing(self):
        stack = StackLayout(properties={"dir": "ltr", "spacing": "6pt"}, children=[Cell(content="a"), Cell(content="b")])
        assert _render(stack) == "#stack(\n  dir: ltr,\n  spacing: 6pt,\n  [a],\n  [b],\n)"

    def test_default_direction(self):
        assert _render(StackLayout()) == "#stack(\n  dir: ttb,\n)"

    def test_boxed_and_aligned_cells(self):
        stack = StackLayout(children=[
            Cell(properties={"fill": "gray", "inset": "3pt"}, content="boxed"),
            Cell(properties={"align": "center"}, content="centered"),
        ])
        output = _render(stack)
        assert "  block(fill: gray, inset: 3pt)[boxed],\n" in output
        assert "  align(center)[centered],\n" in output


class TestContent:
    def test_values_not_html_escaped(self, options):
        assert "[<script>]" in _render(GridLayout(children=[Cell(content="[x]")]), options)

    def test_missing_placeholder_kept_and_escaped(self):
        assert "[Hello \\[missing\\]!]" in _render(GridLayout(children=[Cell(content="Hello [missing]!")]))

    def test_urls_render_as_text(self):
        output = _render(GridLayout(children=[Cell(content="See https://acme.com")]))
        assert "  [See https:\\/\\/acme.com],\n" in output

    def test_styled_text(self):
        label = LabelContent(text="Total", style=Style(font_weight="bold", font_size=14, color="red"))
        assert '[#text(size: 14pt, weight: "bold", fill: red)[Total]]' in _render(GridLayout(children=[Cell(content=[label])]))

    def test_items_joined_with_space(self):
        cell = Cell(content=["Revenue:", FieldContent(source="v", format="number", decimal_places=1)])
        assert "[Revenue: 3.5]" in _render(GridLayout(children=[cell]), RenderOptions(data={"v": 3.45}))

    def test_nested_layouts(self):
        inner = StackLayout(children=[Cell(content="inner")])
        output = _render(GridLayout(children=[Cell(content=[NestedLayoutContent(layout=inner)])]))
        assert "[#stack(\n  dir: ttb,\n  [inner],\n)]" in output


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

class TestDocument:
    def test_preamble_and_layouts(self, scenario_grid):
        design = DocumentDesign(page=PageSetup(margin="2cm"), font=FontSetup(family="Inter", size_pt=10))
        options = RenderOptions(locale="de-DE", design=design, full_document=True)
        output = render_typst.render_document([position_layout(scenario_grid), position_layout(StackLayout())], options)
        assert output.startswith(
            '#set page(paper: "a4")\n'
            "#set page(margin: 2cm)\n"
            '#set text(font: "Inter")\n'
            "#set text(size: 10pt)\n"
            '#set text(lang: "de")\n\n'
            "#grid("
        )
        assert output.endswith("#stack(\n  dir: ttb,\n)\n")

    def test_rtl_preamble(self):
        output = render_typst.render_document([], RenderOptions(locale="he-IL"))
        assert "#set text(dir: rtl)" in output

    def test_without_preamble(self):
        output = render_typst.render_document([position_layout(GridLayout())], RenderOptions(preamble=False))
        assert output == "#grid()\n"
