"""Core compiler modules for einc."""

__all__ = [
    "cache",
    "codegen",
    "config",
    "exceptions",
    "ir",
    "logging",
    "parser",
    "planner",
    "program",
    "runtime",
    "stats",
    "validator",
]
