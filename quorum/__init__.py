"""Session-scoped review orchestration: gather, fan out, aggregate, confirm, post."""

__version__ = "0.1.0"
