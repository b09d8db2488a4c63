from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from deepviz.core.state import JobStatus


class Interaction(BaseModel):
    """Vista mínima de una interacción de la API (el resto de campos se conserva)."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    status: str | None = None
    outputs: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def job_status(self) -> JobStatus:
        return JobStatus.parse(self.status)

    @property
    def content(self) -> str:
        # primer segmento de texto de outputs
        for out in self.outputs:
            kind = out.get("type")
            text = out.get("text")
            if kind in (None, "text") and isinstance(text, str):
                return text
        return ""


class ResearchResult(BaseModel):
    interaction_id: str
    status: str
    content: str
    markdown_path: Path | None = None
    response_path: Path | None = None


class ImageConfig(BaseModel):
    model: str = "gemini-3-pro-image-preview"
    aspect_ratio: str = "16:9"
    image_size: str = "2K"


class ImageResult(BaseModel):
    image_path: Path
    response_path: Path | None = None
