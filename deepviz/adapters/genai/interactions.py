from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import ValidationError

from deepviz.core.errors import CancellationError, SubmissionError, TransportError
from deepviz.core.logging import TRACE, logger
from deepviz.schemas.models import Interaction
from deepviz.utils.retry import retry
from deepviz.utils.text import sanitize_prompt

BASE_URL = "https://generativelanguage.googleapis.com"
API_VERSION = "v1beta"


def _error_detail(resp: httpx.Response) -> str:
    """Extrae error.code / error.message del cuerpo si viene en formato Google."""
    try:
        err = (resp.json() or {}).get("error") or {}
    except (ValueError, AttributeError):
        return resp.text
    msg = err.get("message") or ""
    if err.get("code") is not None:
        return f"code={err['code']}, message={msg}"
    return msg or resp.text


class InteractionsClient:
    """
    Cliente async de la Interactions API (Deep Research).
    Tres operaciones remotas: create, get_status y cancel.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = BASE_URL,
        api_version: str = API_VERSION,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_version = api_version
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> InteractionsClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _path(self, suffix: str = "") -> str:
        return f"/{self.api_version}/interactions{suffix}"

    # ====== create ======
    async def create(self, prompt: str, agent: str) -> str:
        body: dict[str, Any] = {
            "input": sanitize_prompt(prompt),
            "agent": agent,
            "background": True,
            "store": True,
            # la API espera "deep-research" (con guion)
            "agent_config": {"type": "deep-research", "thinking_summaries": "auto"},
            "tools": [{"type": "google_search"}, {"type": "url_context"}],
        }
        logger.debug("Sending request agent=%s", agent)
        logger.log(TRACE, "HTTP Request method=POST body=%s", json.dumps(body, ensure_ascii=False))

        try:
            resp = await self._client.post(self._path(), json=body)
        except httpx.HTTPError as e:
            raise SubmissionError(f"failed to create interaction: {e!r}", phase="create") from e

        logger.log(TRACE, "HTTP Response status_code=%s body=%s", resp.status_code, resp.text)
        logger.debug("Response received status_code=%s", resp.status_code)

        if resp.status_code != httpx.codes.OK:
            detail = _error_detail(resp)
            logger.error("API request failed status_code=%s error=%s", resp.status_code, detail)
            raise SubmissionError(
                f"API error (status {resp.status_code}): {detail}", phase="create"
            )

        try:
            interaction = Interaction.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise SubmissionError(f"invalid response body: {e}", phase="create") from e
        if not interaction.id:
            raise SubmissionError("empty interaction ID in response", phase="create")
        return interaction.id

    # ====== get_status ======
    @retry("interactions-get", tries=3, base_delay=0.5, retry_on=(httpx.TransportError,))
    async def _get(self, interaction_id: str) -> httpx.Response:
        return await self._client.get(self._path(f"/{interaction_id}"))

    async def get_status(self, interaction_id: str) -> Interaction:
        try:
            resp = await self._get(interaction_id)
        except httpx.HTTPError as e:
            raise TransportError(
                f"failed to get interaction: {e!r}", interaction_id=interaction_id, phase="status"
            ) from e

        logger.log(TRACE, "HTTP Response status_code=%s body=%s", resp.status_code, resp.text)

        if resp.status_code != httpx.codes.OK:
            raise TransportError(
                f"unexpected status code: {resp.status_code}, body: {resp.text}",
                interaction_id=interaction_id,
                phase="status",
            )
        try:
            return Interaction.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(
                f"invalid response body: {e}", interaction_id=interaction_id, phase="status"
            ) from e

    # ====== cancel ======
    async def cancel(self, interaction_id: str) -> None:
        try:
            resp = await self._client.post(self._path(f"/{interaction_id}/cancel"))
        except httpx.HTTPError as e:
            raise CancellationError(
                f"failed to cancel research: {e!r}", interaction_id=interaction_id, phase="cancel"
            ) from e

        logger.log(TRACE, "HTTP Response status_code=%s body=%s", resp.status_code, resp.text)

        if resp.status_code != httpx.codes.OK:
            raise CancellationError(
                f"cancel failed with status {resp.status_code}: {resp.text}",
                interaction_id=interaction_id,
                phase="cancel",
            )
        logger.info("Research cancelled interaction_id=%s", interaction_id)
