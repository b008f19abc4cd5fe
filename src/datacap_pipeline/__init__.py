"""DataCap allocation pipeline: event-sourced application lifecycle."""

__version__ = "0.1.0"
