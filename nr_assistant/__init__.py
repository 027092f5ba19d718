"""Editor-side assistant for Node-RED: AI request brokering and next-node completions."""

__version__ = "0.1.0"
