"""Structured error taxonomy shared by positioning, property resolution and rendering.

Every error carries a stable ``code`` (used in RenderResult.error) and a
``context`` dict with node-level location details: which property, which
cell position, which bounds.  Structural errors halt rendering of the layout;
cosmetic ones (unknown colours, unparseable dates, unknown locales) are
logged by the caller and replaced with a safe default instead of raised.
"""
from typing import Any

from models.result import ErrorDetail


class LayoutError(Exception):
    """Base class for all expected layout and rendering failures."""

    code = "layout_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(
            code=self.code,
            message=self.message,
            context={k: _plain(v) for k, v in self.context.items()},
        )


def _plain(value: Any) -> Any:
    """Reduce context values to JSON-friendly primitives."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (tuple, list, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [_plain(v) for v in items]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return repr(value)


# ---------------------------------------------------------------------------
# Structure / property validation
# ---------------------------------------------------------------------------

class InvalidPropertyError(LayoutError):
    code = "invalid_property"

    def __init__(self, node: str, property: str, value: Any, allowed: str | list[str]) -> None:
        allowed_text = allowed if isinstance(allowed, str) else ", ".join(allowed)
        super().__init__(
            f"Invalid value {value!r} for property '{property}' on {node}; expected {allowed_text}",
            node=node, property=property, value=value, allowed=allowed,
        )


class MissingRequiredPropertyError(LayoutError):
    code = "missing_required"

    def __init__(self, node: str, property: str) -> None:
        super().__init__(
            f"{node} is missing required property '{property}'",
            node=node, property=property,
        )


class InvalidNestingError(LayoutError):
    code = "invalid_nesting"

    def __init__(self, parent: str, child: str, message: str | None = None) -> None:
        super().__init__(
            message or f"{child} cannot be placed inside {parent}",
            parent=parent, child=child,
        )


class NestingTooDeepError(InvalidNestingError):
    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__(
            "layout",
            "nested_layout",
            f"Nested layouts exceed the maximum depth of {max_depth} (reached {depth})",
        )
        self.context.update(depth=depth, max_depth=max_depth)


# ---------------------------------------------------------------------------
# Positioning
# ---------------------------------------------------------------------------

class PositionConflictError(LayoutError):
    code = "position_conflict"

    def __init__(self, position: tuple[int, int], occupant: tuple[int, int] | None = None) -> None:
        x, y = position
        reason = (
            f"already occupied by the cell anchored at ({occupant[0]}, {occupant[1]})"
            if occupant is not None else "already occupied"
        )
        super().__init__(f"Cell at ({x}, {y}) conflicts: {reason}", position=position, occupant=occupant)


class SpanOverflowError(LayoutError):
    code = "span_overflow"

    def __init__(self, position: tuple[int, int], span: tuple[int, int], columns: int) -> None:
        super().__init__(
            f"colspan {span[0]} at column {position[0]} exceeds grid width of {columns}",
            position=position, span=span, columns=columns,
        )


class InvalidPositionError(LayoutError):
    code = "invalid_position"

    def __init__(self, position: Any, bounds: Any) -> None:
        super().__init__(
            f"Position {position!r} is outside bounds {bounds!r}",
            position=position, bounds=bounds,
        )


# ---------------------------------------------------------------------------
# Property values
# ---------------------------------------------------------------------------

class PropertyValueError(LayoutError):
    """Raised by the individual value parsers; echoes the offending value."""

    def __init__(self, message: str, value: Any) -> None:
        super().__init__(message, value=value)
        self.value = value


class InvalidTrackSizeError(PropertyValueError):
    code = "invalid_track_size"

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid track size: {value!r}", value)


class InvalidColorError(PropertyValueError):
    code = "invalid_color"

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid color: {value!r}", value)


class InvalidAlignmentError(PropertyValueError):
    code = "invalid_alignment"

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid alignment: {value!r}", value)


class InvalidLengthError(PropertyValueError):
    code = "invalid_length"

    def __init__(self, value: Any, reason: str | None = None) -> None:
        super().__init__(reason or f"Invalid length: {value!r}", value)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

class StructuralEncodeError(LayoutError):
    code = "structural_encode_failure"

    def __init__(self, value: Any, backend: str = "json") -> None:
        super().__init__(
            f"{backend} backend cannot encode value of type {type(value).__name__}",
            backend=backend, value_type=type(value).__name__,
        )


class FunctionEvaluationError(LayoutError):
    """Logged when a dynamic property callback raises; never propagated past the resolver."""

    code = "function_evaluation_failure"

    def __init__(self, property: str, position: tuple[int, int], cause: BaseException) -> None:
        super().__init__(
            f"Property function for '{property}' at {position} raised {type(cause).__name__}: {cause}",
            property=property, position=position,
        )
