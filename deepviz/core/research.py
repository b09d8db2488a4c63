from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from deepviz.core.errors import (
    CancellationError,
    PersistenceError,
    PollTimeoutError,
    RemoteFailure,
    ResearchCancelledError,
)
from deepviz.core.logging import logger
from deepviz.core.state import JobStatus, PollState
from deepviz.schemas.models import Interaction, ResearchResult
from deepviz.utils.paths import write_file


class JobClient(Protocol):
    async def create(self, prompt: str, agent: str) -> str: ...

    async def get_status(self, interaction_id: str) -> Interaction: ...

    async def cancel(self, interaction_id: str) -> None: ...


@dataclass
class ResearchJob:
    """Registro local de un job; lo posee un único execute()."""

    interaction_id: str
    started_at: float
    state: PollState = PollState.CREATED
    polls: int = 0
    settled: bool = field(default=False, repr=False)

    def transition(self, state: PollState) -> None:
        logger.debug(
            "Research state interaction_id=%s %s -> %s",
            self.interaction_id,
            self.state.value,
            state.value,
        )
        self.state = state


class ResearchCoordinator:
    """
    Ciclo de vida de un job de Deep Research:
    created -> polling -> {completed, failed, timed_out, context_cancelled}.

    Cualquier salida de polling que no sea 'completed' dispara una cancelación
    remota best-effort con su propio plazo (no depende del contexto de quien llama).
    """

    def __init__(
        self,
        client: JobClient,
        research_dir: str | Path,
        *,
        agent: str,
        poll_interval: float = 10.0,
        poll_timeout: float = 600.0,
        cancel_timeout: float = 10.0,
        responses_dir: str | Path | None = None,
    ):
        self.client = client
        self.research_dir = Path(research_dir)
        self.responses_dir = Path(responses_dir) if responses_dir else None
        self.agent = agent
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.cancel_timeout = cancel_timeout
        # diagnóstico: job del execute() más reciente (se reemplaza en cada llamada)
        self.last_job: ResearchJob | None = None

    async def execute(
        self, prompt: str, timestamp: str, *, cancel_event: asyncio.Event | None = None
    ) -> ResearchResult:
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        # SubmissionError sale tal cual: todavía no existe nada remoto que cancelar
        interaction_id = await self.client.create(prompt, self.agent)
        job = ResearchJob(interaction_id=interaction_id, started_at=started_at)
        self.last_job = job
        logger.info("Research started interaction_id=%s", interaction_id)

        async with self._pending(job):
            interaction = await self._poll_until_complete(job, cancel_event)
            job.transition(PollState.COMPLETED)
            job.settled = True

        return self._save_result(job, interaction, timestamp)

    @contextlib.asynccontextmanager
    async def _pending(self, job: ResearchJob):
        """Guardia de salida: si el job no quedó resuelto, se cancela en remoto."""
        try:
            yield job
        except asyncio.CancelledError:
            job.transition(PollState.CONTEXT_CANCELLED)
            raise
        except ResearchCancelledError:
            job.transition(PollState.CONTEXT_CANCELLED)
            raise
        except PollTimeoutError:
            job.transition(PollState.TIMED_OUT)
            raise
        except BaseException:
            job.transition(PollState.FAILED)
            raise
        finally:
            logger.info(
                "Research finished interaction_id=%s state=%s polls=%d",
                job.interaction_id,
                job.state.value,
                job.polls,
            )
            if not job.settled:
                await self._compensate(job.interaction_id)

    async def _compensate(self, interaction_id: str) -> None:
        try:
            async with asyncio.timeout(self.cancel_timeout):
                await self.client.cancel(interaction_id)
        except (CancellationError, TimeoutError) as e:
            logger.error("Failed to cancel research interaction_id=%s error=%s", interaction_id, e)
        except Exception as e:
            logger.exception(
                "Unexpected error cancelling research interaction_id=%s error=%r",
                interaction_id,
                e,
            )

    async def _poll_until_complete(
        self, job: ResearchJob, cancel_event: asyncio.Event | None
    ) -> Interaction:
        loop = asyncio.get_running_loop()
        deadline = job.started_at + self.poll_timeout
        job.transition(PollState.POLLING)

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PollTimeoutError(self.poll_timeout, interaction_id=job.interaction_id)

            # la última espera se recorta al tiempo restante
            if await self._wait(min(self.poll_interval, remaining), cancel_event):
                raise ResearchCancelledError(
                    "research cancelled by caller",
                    interaction_id=job.interaction_id,
                    phase="polling",
                )
            if loop.time() >= deadline:
                raise PollTimeoutError(self.poll_timeout, interaction_id=job.interaction_id)

            interaction = await self.client.get_status(job.interaction_id)
            job.polls += 1
            status = interaction.job_status

            if status is JobStatus.COMPLETED:
                logger.info("Research completed interaction_id=%s", job.interaction_id)
                return interaction
            if status is JobStatus.FAILED:
                raise RemoteFailure(
                    "research failed", interaction_id=job.interaction_id, phase="polling"
                )

            logger.info(
                "Research in progress interaction_id=%s status=%s",
                job.interaction_id,
                interaction.status,
            )

    @staticmethod
    async def _wait(delay: float, cancel_event: asyncio.Event | None) -> bool:
        """Espera delay segundos; devuelve True si cancel_event se activó antes."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            async with asyncio.timeout(delay):
                await cancel_event.wait()
        except TimeoutError:
            return cancel_event.is_set()
        return True

    def _save_result(
        self, job: ResearchJob, interaction: Interaction, timestamp: str
    ) -> ResearchResult:
        content = interaction.content
        if not content:
            logger.warning(
                "Research completed without text output interaction_id=%s", job.interaction_id
            )

        markdown_path = self.research_dir / f"{timestamp}.md"
        response_path = None
        try:
            write_file(markdown_path, content.encode("utf-8"))
            logger.info("Research saved path=%s", markdown_path)
            if self.responses_dir is not None:
                response_path = self.responses_dir / f"{timestamp}_research.json"
                write_file(
                    response_path,
                    interaction.model_dump_json(indent=2, exclude_none=True).encode("utf-8"),
                )
        except OSError as e:
            raise PersistenceError(
                f"failed to write research result: {e}",
                interaction_id=job.interaction_id,
                phase="persist",
            ) from e

        return ResearchResult(
            interaction_id=job.interaction_id,
            status=interaction.status or JobStatus.COMPLETED.value,
            content=content,
            markdown_path=markdown_path,
            response_path=response_path,
        )
