"""
Configuration options for patent-browser.

Validated with Pydantic so a hand-edited config file fails loudly instead of
launching a browser from a nonsense path.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .defaults import DEFAULT_HEADLESS


class AppConfig(BaseModel):
    """Persisted user configuration."""

    browser_path: Optional[str] = Field(
        None, description="Path to the Chrome/Chromium executable"
    )
    headless: bool = Field(DEFAULT_HEADLESS, description="Run the browser headless")

    @field_validator("browser_path")
    @classmethod
    def normalize_browser_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a TOML-friendly dictionary (TOML has no null)."""
        return self.model_dump(exclude_none=True)
