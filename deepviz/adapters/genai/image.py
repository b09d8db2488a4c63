from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path

import httpx

from deepviz.adapters.genai.interactions import API_VERSION, BASE_URL
from deepviz.core.errors import ImageGenerationError, PersistenceError
from deepviz.core.logging import TRACE, logger
from deepviz.schemas.models import ImageConfig, ImageResult
from deepviz.utils.paths import write_file
from deepviz.utils.text import sanitize_prompt

INFOGRAPHIC_TEMPLATE = (
    "Take a good look at the content below and turn it into a single infographic image in {lang}.\n"
    "```\n"
    "{content}\n"
    "```"
)


def build_infographics_prompt(markdown: str, lang: str) -> str:
    """Prompt de infografía a partir del Markdown de la investigación."""
    return INFOGRAPHIC_TEMPLATE.format(lang=lang, content=sanitize_prompt(markdown))


def extract_image_data(payload: dict) -> str | None:
    """Primer inlineData.data (base64) encontrado en candidates/parts."""
    for cand in payload.get("candidates") or []:
        for part in (cand.get("content") or {}).get("parts") or []:
            data = (part.get("inlineData") or {}).get("data")
            if data:
                return data
    return None


class ImageClient:
    def __init__(
        self,
        api_key: str,
        images_dir: str | Path,
        responses_dir: str | Path,
        *,
        base_url: str = BASE_URL,
        timeout: float = 120.0,  # la generación de imagen tarda
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.images_dir = Path(images_dir)
        self.responses_dir = Path(responses_dir)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def generate(self, prompt: str, config: ImageConfig, timestamp: str) -> ImageResult:
        body = {
            "contents": [{"parts": [{"text": sanitize_prompt(prompt)}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {"aspectRatio": config.aspect_ratio, "imageSize": config.image_size},
            },
        }
        url = f"{self.base_url}/{API_VERSION}/models/{config.model}:generateContent"

        logger.info(
            "Generating image model=%s aspect_ratio=%s size=%s",
            config.model,
            config.aspect_ratio,
            config.image_size,
        )
        logger.log(TRACE, "HTTP Request url=%s method=POST body=%s", url, json.dumps(body))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as cli:
                resp = await cli.post(url, json=body, headers={"x-goog-api-key": self.api_key})
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"failed to do request: {e!r}", phase="image") from e

        logger.log(
            TRACE, "HTTP Response url=%s status_code=%s body=%s", url, resp.status_code, resp.text
        )

        if resp.status_code != httpx.codes.OK:
            raise ImageGenerationError(
                f"unexpected status code: {resp.status_code}, body: {resp.text}", phase="image"
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise ImageGenerationError(f"failed to unmarshal response: {e}", phase="image") from e

        b64 = extract_image_data(payload) if isinstance(payload, dict) else None
        if not b64:
            raise ImageGenerationError("no image data found in response", phase="image")
        try:
            image_data = base64.b64decode(b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageGenerationError(
                f"failed to decode base64 image data: {e}", phase="image"
            ) from e

        image_path = self.images_dir / f"{timestamp}.png"
        response_path = self.responses_dir / f"{timestamp}_image.json"
        try:
            write_file(image_path, image_data)
            logger.info("Image saved path=%s", image_path)
            write_file(response_path, resp.content)
            logger.info("Raw response saved path=%s", response_path)
        except OSError as e:
            raise PersistenceError(f"failed to write image: {e}", phase="persist") from e

        return ImageResult(image_path=image_path, response_path=response_path)
