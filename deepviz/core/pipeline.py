from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import httpx

from deepviz.adapters.genai.image import ImageClient, build_infographics_prompt
from deepviz.adapters.genai.interactions import InteractionsClient
from deepviz.config.settings import Settings
from deepviz.core.errors import ConfigurationError
from deepviz.core.logging import logger, setup_logging
from deepviz.core.research import ResearchCoordinator
from deepviz.schemas.models import ImageConfig, ImageResult, ResearchResult
from deepviz.utils.paths import generate_timestamp, open_file


@dataclass
class PipelineOptions:
    prompt: str = ""
    file: Path | None = None
    research_only: bool = False
    image_only: bool = False
    verbose: bool = False
    no_open: bool = False


@dataclass
class PipelineResult:
    timestamp: str
    output_dir: Path
    research: ResearchResult | None = None
    image: ImageResult | None = None


def load_prompt(opts: PipelineOptions) -> str:
    if opts.file:
        try:
            prompt = Path(opts.file).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"failed to read prompt file: {e}") from e
        if not prompt:
            raise ConfigurationError(f"prompt file is empty: {opts.file}")
        logger.info("Loaded prompt from file file=%s", opts.file)
        return prompt
    if not opts.prompt:
        raise ConfigurationError("either --prompt or --file must be specified")
    return opts.prompt


async def run_pipeline(
    opts: PipelineOptions,
    settings: Settings,
    *,
    cancel_event: asyncio.Event | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PipelineResult:
    """Investigación -> infografía. transport solo se inyecta en tests."""
    if not settings.api_key:
        raise ConfigurationError("API key is not set (DEEPVIZ_API_KEY or GEMINI_API_KEY)")

    timestamp = generate_timestamp()
    settings.ensure_directories()
    setup_logging(
        "DEBUG" if opts.verbose else settings.log_level,
        settings.logs_dir / f"{timestamp}.log",
    )

    prompt = load_prompt(opts)
    logger.info("Pipeline started timestamp=%s output_dir=%s", timestamp, settings.output_dir)
    result = PipelineResult(timestamp=timestamp, output_dir=Path(settings.output_dir))

    if not opts.image_only:
        logger.info("Starting Deep Research")
        async with InteractionsClient(settings.api_key, transport=transport) as client:
            coordinator = ResearchCoordinator(
                client,
                settings.research_dir,
                agent=settings.deep_research_agent,
                poll_interval=settings.poll_interval,
                poll_timeout=settings.poll_timeout,
                cancel_timeout=settings.cancel_timeout,
                responses_dir=settings.responses_dir,
            )
            result.research = await coordinator.execute(
                prompt, timestamp, cancel_event=cancel_event
            )
        logger.info("Deep Research completed")

    if not opts.research_only:
        logger.info("Starting image generation")
        # modo image-only: el prompt del usuario hace de contenido
        source = result.research.content if result.research else prompt
        image_client = ImageClient(
            settings.api_key, settings.images_dir, settings.responses_dir, transport=transport
        )
        result.image = await image_client.generate(
            build_infographics_prompt(source, settings.image_lang),
            ImageConfig(
                model=settings.model,
                aspect_ratio=settings.aspect_ratio,
                image_size=settings.image_size,
            ),
            timestamp,
        )
        logger.info("Image generation completed image_path=%s", result.image.image_path)

        if not opts.no_open and settings.auto_open:
            try:
                open_file(result.image.image_path)
            except OSError as e:
                logger.info("Failed to open image error=%s", e)

    logger.info("Pipeline completed")
    return result
