"""Document design defaults: typed representation of design.yaml.

Used by the full-document wrappers: the markup preamble (page size, margins,
base font) and the HTML document stylesheet.
"""
from pathlib import Path

from pydantic import BaseModel, Field


class PageSetup(BaseModel):
    paper: str = "a4"
    margin: str | None = None  # e.g. "2cm"; None leaves the target default


class FontSetup(BaseModel):
    family: str | None = None
    size_pt: float | None = Field(default=None, gt=0)


class HtmlTheme(BaseModel):
    font_family: str = "DejaVu Sans, Arial, sans-serif"
    text_color: str = "#1a1a1a"
    border_color: str = "#000000"
    header_background: str = "#f4f7fa"
    cell_padding: str = "4px"

    @property
    def stylesheet_vars(self) -> dict[str, str]:
        return {
            "--ash-font": self.font_family,
            "--ash-text": self.text_color,
            "--ash-border": self.border_color,
            "--ash-header-bg": self.header_background,
            "--ash-cell-padding": self.cell_padding,
        }


class DocumentDesign(BaseModel):
    """Document-level defaults loaded from design.yaml.

    Provides defaults for every field so it is usable even when design.yaml
    is absent or partially specified.
    """
    page: PageSetup = Field(default_factory=PageSetup)
    font: FontSetup = Field(default_factory=FontSetup)
    html: HtmlTheme = Field(default_factory=HtmlTheme)

    @classmethod
    def load(cls, path: Path) -> "DocumentDesign":
        """Load from a YAML file. Missing fields use Pydantic defaults.

        Raises FileNotFoundError if path does not exist.
        """
        import yaml  # lazy, only needed at load time
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls.model_validate(data)

    @classmethod
    def load_or_default(cls, path: Path) -> "DocumentDesign":
        """Load from path if it exists, otherwise return the default design."""
        if path.exists():
            return cls.load(path)
        return cls()
