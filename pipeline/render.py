"""Render dispatcher: positioning -> property validation -> backend emission.

Public entry points never raise for layout problems: expected validation
failures (LayoutError) and unexpected internal failures are both returned as
a failed RenderResult, so a caller always gets either a complete document or
one structured error.
"""
import logging
from collections.abc import Iterator
from typing import Any, Literal

from models.options import RenderData, RenderOptions
from models.result import ErrorDetail, Notice, RenderResult
from pipeline import render_html, render_json, render_typst
from pipeline.errors import LayoutError
from pipeline.positioning import layout_gaps, position_layout
from pipeline.properties import validate_layout_properties

logger = logging.getLogger(__name__)

Backend = Literal["html", "typst", "json"]
BACKENDS: tuple[str, ...] = ("html", "typst", "json")


def prepare(layouts: list[Any], options: RenderOptions) -> tuple[list[Any], list[Notice]]:
    """Position every layout and validate its properties; collect gap notices."""
    positioned = [position_layout(layout, options.max_depth) for layout in layouts]
    for layout in positioned:
        validate_layout_properties(layout)
    notices = [notice for layout in positioned for notice in layout_gaps(layout)]
    return positioned, notices


def _emit(backend: str, layouts: list[Any], single: bool, options: RenderOptions) -> str:
    if backend == "html":
        if options.full_document:
            return render_html.render_document(layouts, options)
        return render_html.render(layouts[0], options) if single else render_html.render_all(layouts, options)
    if backend == "typst":
        if options.full_document:
            return render_typst.render_document(layouts, options)
        return "\n\n".join(render_typst.render(layout, options) for layout in layouts)
    return render_json.render(layouts[0], options) if single else render_json.render_all(layouts, options)


def _check_backend(backend: str) -> None:
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend {backend!r}; expected one of {', '.join(BACKENDS)}")


def _failure(backend: str, exc: Exception) -> RenderResult:
    if isinstance(exc, LayoutError):
        logger.warning("Render failed (%s): %s", exc.code, exc.message)
        return RenderResult.failure(backend, exc.to_detail())
    logger.exception("Unexpected failure in the %s backend", backend)
    return RenderResult.failure(
        backend,
        ErrorDetail(code="internal_error", message=f"{type(exc).__name__}: {exc}"),
    )


def render(
    layout_or_layouts: Any,
    options: RenderOptions | None = None,
    backend: Backend = "html",
) -> RenderResult:
    """Render one layout or a list of layouts with the chosen backend."""
    _check_backend(backend)
    options = options or RenderOptions()
    single = not isinstance(layout_or_layouts, (list, tuple))
    layouts = [layout_or_layouts] if single else list(layout_or_layouts)
    try:
        positioned, notices = prepare(layouts, options)
        output = _emit(backend, positioned, single, options)
    except Exception as exc:
        return _failure(backend, exc)
    logger.info("Rendered %d layout(s) with the %s backend (%d gap notice(s))", len(layouts), backend, len(notices))
    return RenderResult.success(backend, output, notices)


def render_records(data: RenderData, options: RenderOptions | None = None) -> RenderResult:
    """``{"records": [...]}`` (grouped when data declares groups), JSON backend only."""
    options = options or RenderOptions()
    try:
        output = render_json.render_records(data, options)
    except Exception as exc:
        return _failure("json", exc)
    return RenderResult.success("json", output)


def render_stream(source: RenderData | list[Any], options: RenderOptions | None = None) -> RenderResult:
    """Lazy JSON rendering: the result's ``chunks`` is pulled by the consumer.

    Layouts are positioned and validated up front so structural errors are
    reported before the first chunk.  Encoding errors in record values can
    only surface while chunks are pulled and are raised from the iterator as
    StructuralEncodeError.
    """
    options = options or RenderOptions()
    try:
        if isinstance(source, RenderData):
            chunks: Iterator[str] = render_json.stream_records(source, options)
        else:
            positioned, _ = prepare(list(source), options)
            chunks = render_json.stream_layouts(positioned, options)
    except Exception as exc:
        return _failure("json", exc)
    return RenderResult.streaming("json", chunks)
