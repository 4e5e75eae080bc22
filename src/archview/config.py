"""⚙️ Configuration - Environment settings and layout profiles."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from archview.graph.layout import LayoutConfig


class Settings(BaseSettings):
    """Environment-based settings (prefix ``ARCHVIEW_``)."""

    model_config = SettingsConfigDict(env_prefix="ARCHVIEW_", case_sensitive=False)

    # Services
    use_mock_services: bool = Field(default=False)
    metadata_uri: str = Field(default="http://localhost:3001/api")
    events_uri: str = Field(default="http://localhost:3003/api")
    operations_uri: str = Field(default="http://localhost:3002/api")
    request_timeout: float = Field(default=30.0, gt=0)

    # Queries
    event_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of event rows requested per query",
    )

    # Interaction
    double_click_ms: int = Field(default=300, ge=50, le=2000)

    # Layout
    layout_file: Path | None = Field(
        default=None,
        description="YAML file with a 'layout' section overriding margins",
    )

    def layout_config(self) -> LayoutConfig:
        """Layout margins from ``layout_file``, or the defaults."""
        if self.layout_file is None:
            return LayoutConfig()
        return LayoutConfig.from_yaml(self.layout_file)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings from environment."""
    return Settings()
