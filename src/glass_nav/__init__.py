"""Turn-by-turn navigation core for smart glasses."""

__version__ = "0.1.0"
