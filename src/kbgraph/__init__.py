"""kbgraph: indexador y resolvedor de corpus de conocimiento en markdown."""

__version__ = "0.1.0"
