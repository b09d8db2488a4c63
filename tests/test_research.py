from __future__ import annotations

import asyncio
import logging
import time

import pytest

from deepviz.core.errors import (
    CancellationError,
    PersistenceError,
    PollTimeoutError,
    RemoteFailure,
    ResearchCancelledError,
    SubmissionError,
    TransportError,
)
from deepviz.core.research import ResearchCoordinator
from deepviz.core.state import PollState
from deepviz.schemas.models import Interaction

REPORT = "# Informe\n\nResultados con acentos: café, 日本語.\n"


class FakeJobClient:
    """Cliente remoto falso que registra cada llamada."""

    def __init__(
        self,
        statuses,
        *,
        content=REPORT,
        create_error=None,
        status_error=None,
        cancel_error=None,
        cancel_delay=0.0,
    ):
        self.statuses = list(statuses)
        self.content = content
        self.create_error = create_error
        self.status_error = status_error
        self.cancel_error = cancel_error
        self.cancel_delay = cancel_delay
        self.created = []
        self.polled = []
        self.cancelled = []

    async def create(self, prompt, agent):
        self.created.append((prompt, agent))
        if self.create_error:
            raise self.create_error
        return "int-123"

    async def get_status(self, interaction_id):
        self.polled.append(interaction_id)
        if self.status_error:
            raise self.status_error
        # el último estado se repite indefinidamente
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        outputs = [{"type": "text", "text": self.content}] if status == "completed" else []
        return Interaction(id=interaction_id, status=status, outputs=outputs)

    async def cancel(self, interaction_id):
        # debe poder esperar aunque la tarea de quien llama ya esté cancelada
        await asyncio.sleep(self.cancel_delay)
        if self.cancel_error:
            raise self.cancel_error
        self.cancelled.append(interaction_id)


def _coordinator(client, tmp_path, **kw):
    kw.setdefault("poll_interval", 0.01)
    kw.setdefault("poll_timeout", 5.0)
    return ResearchCoordinator(
        client,
        tmp_path / "research",
        agent="deep-research-test",
        responses_dir=tmp_path / "responses",
        **kw,
    )


@pytest.mark.asyncio
async def test_completed_on_first_poll_persists_content(tmp_path):
    client = FakeJobClient(["completed"])
    coord = _coordinator(client, tmp_path)

    result = await coord.execute("¿Qué es PPO?", "20250101_120000")

    assert result.interaction_id == "int-123"
    assert result.status == "completed"
    assert result.content == REPORT
    assert result.markdown_path == tmp_path / "research" / "20250101_120000.md"
    assert result.markdown_path.exists()
    # lo persistido es idéntico byte a byte
    assert result.markdown_path.read_bytes() == result.content.encode("utf-8")
    assert result.response_path.exists()
    assert client.created == [("¿Qué es PPO?", "deep-research-test")]
    assert client.cancelled == []
    assert coord.last_job.state is PollState.COMPLETED
    assert coord.last_job.polls == 1


@pytest.mark.asyncio
async def test_failed_status_cancels_exactly_once(tmp_path):
    client = FakeJobClient(["in_progress", "failed"])
    coord = _coordinator(client, tmp_path)

    with pytest.raises(RemoteFailure) as ei:
        await coord.execute("x", "ts")

    assert ei.value.interaction_id == "int-123"
    assert "int-123" in str(ei.value)
    assert client.cancelled == ["int-123"]
    assert coord.last_job.state is PollState.FAILED
    assert not (tmp_path / "research" / "ts.md").exists()


@pytest.mark.asyncio
async def test_timeout_after_bounded_number_of_polls(tmp_path):
    client = FakeJobClient(["in_progress"])
    coord = _coordinator(client, tmp_path, poll_interval=0.1, poll_timeout=0.3)

    with pytest.raises(PollTimeoutError) as ei:
        await coord.execute("x", "ts")

    assert ei.value.timeout == 0.3
    assert 2 <= len(client.polled) <= 4
    assert client.cancelled == ["int-123"]
    assert coord.last_job.state is PollState.TIMED_OUT


@pytest.mark.asyncio
async def test_cancel_event_interrupts_wait_promptly(tmp_path):
    client = FakeJobClient(["in_progress"])
    coord = _coordinator(client, tmp_path, poll_interval=5.0, poll_timeout=600)
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, event.set)

    t0 = time.monotonic()
    with pytest.raises(ResearchCancelledError):
        await coord.execute("x", "ts", cancel_event=event)

    assert time.monotonic() - t0 < 1.0
    assert client.polled == []
    assert client.cancelled == ["int-123"]
    assert coord.last_job.state is PollState.CONTEXT_CANCELLED


@pytest.mark.asyncio
async def test_task_cancellation_still_compensates(tmp_path):
    client = FakeJobClient(["in_progress"], cancel_delay=0.01)
    coord = _coordinator(client, tmp_path, poll_interval=5.0, poll_timeout=600)

    task = asyncio.create_task(coord.execute("x", "ts"))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # la cancelación remota terminó pese a que la tarea estaba cancelada
    assert client.cancelled == ["int-123"]
    assert coord.last_job.state is PollState.CONTEXT_CANCELLED


@pytest.mark.asyncio
async def test_submission_error_needs_no_compensation(tmp_path):
    client = FakeJobClient(["completed"], create_error=SubmissionError("rejected", phase="create"))
    coord = _coordinator(client, tmp_path)

    with pytest.raises(SubmissionError):
        await coord.execute("x", "ts")

    assert client.polled == []
    assert client.cancelled == []


@pytest.mark.asyncio
async def test_transport_error_mid_poll_compensates(tmp_path):
    err = TransportError("boom", interaction_id="int-123", phase="status")
    client = FakeJobClient(["in_progress"], status_error=err)
    coord = _coordinator(client, tmp_path)

    with pytest.raises(TransportError) as ei:
        await coord.execute("x", "ts")

    assert ei.value is err
    assert client.cancelled == ["int-123"]


@pytest.mark.asyncio
async def test_cancel_failure_does_not_override_outcome(tmp_path):
    client = FakeJobClient(
        ["failed"], cancel_error=CancellationError("cancel failed with status 400")
    )
    coord = _coordinator(client, tmp_path)

    with pytest.raises(RemoteFailure):
        await coord.execute("x", "ts")
    assert client.cancelled == []


@pytest.mark.asyncio
async def test_hanging_cancel_is_bounded_by_its_own_deadline(tmp_path):
    client = FakeJobClient(["failed"], cancel_delay=10.0)
    coord = _coordinator(client, tmp_path, cancel_timeout=0.05)

    t0 = time.monotonic()
    with pytest.raises(RemoteFailure):
        await coord.execute("x", "ts")
    assert time.monotonic() - t0 < 2.0


@pytest.mark.asyncio
async def test_unknown_statuses_are_in_progress(tmp_path):
    client = FakeJobClient(["queued_for_gpu", "in_progress", "", "completed"])
    coord = _coordinator(client, tmp_path)

    result = await coord.execute("x", "ts")

    assert result.content == REPORT
    assert len(client.polled) == 4
    assert client.cancelled == []


@pytest.mark.asyncio
async def test_remote_cancelled_status_keeps_polling(tmp_path):
    client = FakeJobClient(["cancelled", "completed"])
    coord = _coordinator(client, tmp_path)

    result = await coord.execute("x", "ts")

    assert result.content == REPORT
    assert len(client.polled) == 2
    assert client.cancelled == []
    assert coord.last_job.state is PollState.COMPLETED


@pytest.mark.asyncio
async def test_remote_cancelled_status_ends_in_timeout(tmp_path):
    client = FakeJobClient(["cancelled"])
    coord = _coordinator(client, tmp_path, poll_interval=0.1, poll_timeout=0.3)

    with pytest.raises(PollTimeoutError):
        await coord.execute("x", "ts")

    assert 2 <= len(client.polled) <= 4
    assert client.cancelled == ["int-123"]
    assert coord.last_job.state is PollState.TIMED_OUT


@pytest.mark.asyncio
async def test_status_match_is_exact(tmp_path):
    # variantes de mayúsculas o con espacios no son terminales
    client = FakeJobClient(["Completed", " FAILED ", "completed"])
    coord = _coordinator(client, tmp_path)

    result = await coord.execute("x", "ts")

    assert result.content == REPORT
    assert len(client.polled) == 3
    assert client.cancelled == []


@pytest.mark.asyncio
async def test_persistence_failure_after_completion(tmp_path):
    # research_dir ocupado por un archivo: no se puede crear el directorio
    (tmp_path / "research").write_text("not a dir")
    client = FakeJobClient(["completed"])
    coord = _coordinator(client, tmp_path)

    with pytest.raises(PersistenceError) as ei:
        await coord.execute("x", "ts")

    assert ei.value.interaction_id == "int-123"
    # el job remoto ya terminó: no hay nada que cancelar
    assert client.cancelled == []
    assert coord.last_job.state is PollState.COMPLETED


@pytest.mark.asyncio
async def test_last_job_tracks_most_recent_execute(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="deepviz")
    client = FakeJobClient(["failed", "completed"])
    coord = _coordinator(client, tmp_path)

    with pytest.raises(RemoteFailure):
        await coord.execute("x", "first")
    first = coord.last_job
    result = await coord.execute("x", "second")

    assert result.markdown_path.name == "second.md"
    assert first.state is PollState.FAILED
    assert coord.last_job is not first
    assert coord.last_job.state is PollState.COMPLETED
    finished = [r.getMessage() for r in caplog.records if "Research finished" in r.getMessage()]
    assert finished == [
        "Research finished interaction_id=int-123 state=failed polls=1",
        "Research finished interaction_id=int-123 state=completed polls=1",
    ]
