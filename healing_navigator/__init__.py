"""Self-Healing Navigator - resilient browser automation with error recovery."""

__version__ = "0.1.0"
