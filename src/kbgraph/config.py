"""Configuración centralizada de kbgraph con pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Todas las variables se leen desde env vars con prefijo KBGRAPH_."""

    # --- Corpus ---
    corpus_root: str | None = None
    doc_separator: str = "RELATED_DOC_SEP"
    exclude_globs: list[str] = []

    # --- Loader ---
    loader_workers: int = 8

    # --- Links / grafo ---
    related_headings: list[str] = [
        "related documents",
        "related",
        "see also",
        "related patterns",
    ]

    # --- Dedup ---
    similarity_threshold: float = 0.6

    # --- Validación ---
    fail_on: str = "warning"

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = False

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_prefix": "KBGRAPH_", "env_file": ".env"}


def get_settings() -> Settings:
    """Construye la configuración desde el entorno."""
    return Settings()
