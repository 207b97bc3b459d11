"""In-memory planning poker rooms with real-time websocket fan-out."""

__version__ = "0.1.0"
