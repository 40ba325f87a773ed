"""Lint rules and diagnostics for Convex backend projects: data model, security, performance and schema rules, and a rule registry."""

__version__ = "1.1.0"
__all__ = ["model", "security", "performance", "schema", "registry"]