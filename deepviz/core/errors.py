from __future__ import annotations


class DeepvizError(Exception):
    """
    Error base del pipeline.
    Lleva el interaction_id y la fase para poder cruzarlo con los logs remotos.
    """

    def __init__(
        self, message: str, *, interaction_id: str | None = None, phase: str | None = None
    ):
        super().__init__(message)
        self.message = message
        self.interaction_id = interaction_id
        self.phase = phase

    def __str__(self) -> str:
        ctx = []
        if self.phase:
            ctx.append(f"phase={self.phase}")
        if self.interaction_id:
            ctx.append(f"interaction_id={self.interaction_id}")
        return f"{self.message} ({', '.join(ctx)})" if ctx else self.message


class ConfigurationError(DeepvizError):
    pass


class SubmissionError(DeepvizError):
    """El servicio rechazó la creación del job (no hay nada que cancelar)."""


class TransportError(DeepvizError):
    """Fallo de red o código inesperado durante el polling."""


class RemoteFailure(DeepvizError):
    """El job llegó al estado remoto 'failed'."""


class PollTimeoutError(DeepvizError):
    def __init__(self, timeout: float, *, interaction_id: str | None = None):
        super().__init__(
            f"polling timeout after {timeout:g} seconds",
            interaction_id=interaction_id,
            phase="polling",
        )
        self.timeout = timeout


class ResearchCancelledError(DeepvizError):
    """Cancelación pedida por quien llama (cancel_event)."""


class CancellationError(DeepvizError):
    """Fallo de la cancelación compensatoria; solo se loguea."""


class PersistenceError(DeepvizError):
    pass


class ImageGenerationError(DeepvizError):
    pass
