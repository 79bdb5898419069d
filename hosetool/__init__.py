"""Server configuration and settings, cargo build control, process killing and TCP/WebSocket test clients."""

__version__ = "0.1.0"