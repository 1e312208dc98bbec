"""Interactive force-directed view of network traffic flows."""

__version__ = "0.1.0"
