"""GraphEdit CLI: import-graph aware multi-file AI editing."""

__version__ = "0.1.0"
