from __future__ import annotations


def sanitize_prompt(prompt: str) -> str:
    """
    Quita caracteres de control (NUL, BEL, ESC, ...) conservando texto
    imprimible Unicode y cualquier espacio en blanco (\\n, \\t, etc.).
    """
    return "".join(ch for ch in prompt if ch.isprintable() or ch.isspace())
