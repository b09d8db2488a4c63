from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Nivel extra por debajo de DEBUG para volcar cuerpos HTTP completos
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("deepviz")


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name == "TRACE":
        return TRACE
    return getattr(logging, name, logging.INFO)


def setup_logging(level: str | int = "INFO", log_file: Path | None = None) -> logging.Logger:
    """
    Configura el logger 'deepviz': consola legible + archivo JSON (si hay log_file).
    Se puede llamar varias veces; reemplaza los handlers anteriores.
    """
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(_resolve_level(level))

    # Consola (humano)
    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logger.level)
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(sh)

    # Archivo (JSON, rotación)
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
        fh.setLevel(logger.level)
        fh.setFormatter(_JsonFormatter())
        logger.addHandler(fh)

    logger.propagate = False
    logger.info("logging initialized (file=%s)", str(log_file) if log_file else "-")
    return logger
