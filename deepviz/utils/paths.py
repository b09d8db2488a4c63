from __future__ import annotations

import subprocess
import sys
from datetime import datetime
from pathlib import Path


def generate_timestamp(now: datetime | None = None) -> str:
    """Marca de tiempo YYYYMMDD_HHMMSS usada como clave de los artefactos."""
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")


def ensure_dir(p: str | Path) -> Path:
    path = Path(p).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_file(path: str | Path, data: bytes) -> Path:
    """Escribe bytes creando los directorios padre que falten."""
    path = Path(path)
    ensure_dir(path.parent)
    path.write_bytes(data)
    return path


def open_file(path: str | Path) -> None:
    """
    Abre el archivo con la aplicación por defecto del sistema.
    - macOS: open
    - Linux: xdg-open
    - Windows: cmd /c start
    """
    p = str(path)
    if sys.platform == "darwin":
        cmd = ["open", p]
    elif sys.platform.startswith("linux"):
        cmd = ["xdg-open", p]
    elif sys.platform == "win32":
        cmd = ["cmd", "/c", "start", "", p]
    else:
        raise OSError(f"unsupported platform: {sys.platform}")
    subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
