from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Document info
    title: str = Field(default="API", alias="CONTRACTGEN_TITLE")
    version: str = Field(default="0.1.0", alias="CONTRACTGEN_VERSION")
    description: str | None = Field(default=None, alias="CONTRACTGEN_DESCRIPTION")
    servers: list[str] = Field(default_factory=list, alias="CONTRACTGEN_SERVERS")  # JSON list in env

    # Outputs (stdout when neither is set)
    doc_out: Path | None = Field(default=None, alias="CONTRACTGEN_DOC_OUT")
    client_out: Path | None = Field(default=None, alias="CONTRACTGEN_CLIENT_OUT")
    document_format: Literal["yaml", "json"] = Field(default="yaml", alias="CONTRACTGEN_FORMAT")

    # Client
    client_class_name: str = Field(default="ApiClient", alias="CONTRACTGEN_CLIENT_CLASS")

    # Walker
    max_depth: int = Field(default=256, alias="CONTRACTGEN_MAX_DEPTH", ge=1)

    def with_overrides(self, **overrides: object) -> "Settings":
        """Copy with every non-None override applied (CLI flags win over env)."""
        values = {name: value for name, value in overrides.items() if value is not None}
        return self.model_copy(update=values)
