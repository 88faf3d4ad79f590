#!/usr/bin/env python3
"""Render report layouts from a YAML/JSON file.

Usage:
    python run_render.py layout.yaml                                  # HTML fragment to stdout
    python run_render.py layout.yaml --data data.json --locale de-DE  # interpolate report data
    python run_render.py layout.yaml --backend typst --document --output report.typ
    python run_render.py layout.yaml --backend json --pretty
    python run_render.py --records --data data.json                   # records/groups as JSON
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from settings import Settings
from models.design import DocumentDesign
from models.layout import load_layouts
from models.options import RenderData, RenderOptions
from pipeline import render as renderer

logger = logging.getLogger("run_render")


def _load_data(path: Path) -> RenderData:
    """A data file is either ``{records, variables, groups}`` or a plain variables mapping."""
    import yaml  # lazy, JSON is read by the same loader
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if isinstance(raw, dict) and raw.keys() & {"records", "variables", "groups"}:
        return RenderData.model_validate(raw)
    return RenderData(variables=raw)


def _write(text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    logger.info("Wrote %s", output)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Render report layouts to HTML, Typst markup or JSON")
    parser.add_argument("layout", type=Path, nargs="?", help="Layout file (YAML or JSON)")
    parser.add_argument("--data", type=Path, help="Report data file (YAML or JSON)")
    parser.add_argument("--backend", choices=renderer.BACKENDS, default="html")
    parser.add_argument("--locale", help="Locale tag, e.g. de-DE (default from settings)")
    parser.add_argument("--currency", help="ISO currency code (default from settings)")
    parser.add_argument("--document", action="store_true",
                        help="Wrap output as a full document (HTML page / markup preamble)")
    parser.add_argument("--title", default="Report", help="Document title for --document HTML")
    parser.add_argument("--pretty", action="store_true", help="Indent JSON output")
    parser.add_argument("--records", action="store_true",
                        help="Emit the data file's records (grouped if it declares groups) as JSON")
    parser.add_argument("--stream", action="store_true", help="Write JSON output chunk by chunk")
    parser.add_argument("--output", "-o", type=Path, help="Output file (default: stdout)")
    args = parser.parse_args(argv)

    settings = Settings()
    logging.basicConfig(
        level=settings.numeric_log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.layout is None and not args.records:
        parser.error("a layout file is required unless --records is given")

    data = _load_data(args.data) if args.data else RenderData()
    overrides = {"data": data.context_for(), "full_document": args.document, "title": args.title}
    if args.locale:
        overrides["locale"] = args.locale
    if args.currency:
        overrides["currency"] = args.currency.upper()
    if args.pretty:
        overrides["pretty"] = True
    options = RenderOptions.from_settings(
        settings, design=DocumentDesign.load_or_default(settings.design_path), **overrides
    )

    if args.records:
        result = renderer.render_stream(data, options) if args.stream else renderer.render_records(data, options)
    else:
        layouts = load_layouts(args.layout)
        logger.info("Loaded %d layout(s) from %s", len(layouts), args.layout)
        if args.stream and args.backend == "json":
            result = renderer.render_stream(layouts, options)
        else:
            result = renderer.render(layouts[0] if len(layouts) == 1 else layouts, options, args.backend)

    if not result.ok:
        print(f"error: {result.error.format()}", file=sys.stderr)
        return 1
    for notice in result.notices:
        logger.info(notice.message)
    _write(result.text(), args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
