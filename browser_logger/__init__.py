"""Browser Logger - capture console and network activity from a live browser."""

__version__ = "1.0.0"
