"""Outcome of a render call: either output (or a lazy chunk stream) or one structured error."""
from collections.abc import Iterator
from typing import Any, Literal

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)

    def format(self) -> str:
        if not self.context:
            return f"[{self.code}] {self.message}"
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {self.message} ({details})"


class Notice(BaseModel):
    """Informational finding that never halts rendering (e.g. an unoccupied grid slot)."""
    code: Literal["grid_gap"] = "grid_gap"
    message: str
    position: tuple[int, int] | None = None


class RenderResult(BaseModel):
    ok: bool
    backend: str
    output: str | None = None
    # Iterator[str], stored as-is
    chunks: Any = Field(default=None, exclude=True)
    error: ErrorDetail | None = None
    notices: list[Notice] = Field(default_factory=list)

    @classmethod
    def success(cls, backend: str, output: str, notices: list[Notice] | None = None) -> "RenderResult":
        return cls(ok=True, backend=backend, output=output, notices=notices or [])

    @classmethod
    def streaming(cls, backend: str, chunks: Iterator[str]) -> "RenderResult":
        return cls(ok=True, backend=backend, chunks=chunks)

    @classmethod
    def failure(cls, backend: str, error: ErrorDetail) -> "RenderResult":
        return cls(ok=False, backend=backend, error=error)

    def text(self) -> str:
        """The whole output; drains ``chunks`` for a streaming result."""
        if self.chunks is not None:
            return "".join(self.chunks)
        return self.output or ""
