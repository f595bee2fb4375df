"""Errores fatales del pipeline de indexación.

Los problemas por archivo o por documento no son excepciones: se acumulan
como ``LoadError`` o ``ValidationIssue`` en el resultado.
"""

from __future__ import annotations


class KbGraphError(Exception):
    """Base de todos los errores de kbgraph."""


class CorpusRootError(KbGraphError):
    """La raíz del corpus no existe, no es un directorio o no se puede leer."""

    def __init__(self, root: str, reason: str) -> None:
        super().__init__(f"Raíz de corpus inválida '{root}': {reason}")
        self.root = root
        self.reason = reason


class EmptyCorpusError(KbGraphError):
    """Ningún documento se cargó con éxito."""

    def __init__(self, root: str, failed: int = 0) -> None:
        super().__init__(
            f"Corpus vacío en '{root}': 0 documentos cargados ({failed} archivos con error)"
        )
        self.root = root
        self.failed = failed
