"""
Display preferences persisted across restarts.
"""

from __future__ import annotations

from typing import Dict, Literal
from pydantic import BaseModel, Field

FontCategory = Literal["headings", "subheadings", "body", "ui"]
FontOption = Literal["Plus Jakarta Sans", "Montserrat", "Inter", "DM Sans"]

DEFAULT_FONTS: Dict[str, str] = {
    "headings": "Plus Jakarta Sans",
    "subheadings": "Montserrat",
    "body": "Inter",
    "ui": "DM Sans",
}


class Preferences(BaseModel):
    theme: str = "light"
    font_size: int = Field(default=100, ge=50, le=200)
    button_style: Literal["rounded", "square", "pill"] = "rounded"
    fonts: Dict[FontCategory, FontOption] = Field(default_factory=lambda: dict(DEFAULT_FONTS))
