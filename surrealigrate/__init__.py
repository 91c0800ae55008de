"""surrealigrate: versioned SurrealQL migrations for SurrealDB."""

__version__ = "1.0.0"
