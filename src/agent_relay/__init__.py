"""Chat gateway that relays user tasks to external CLI agents."""

__version__ = "0.4.0"
