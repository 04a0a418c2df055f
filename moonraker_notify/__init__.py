"""Live print status from a Moonraker printer backend."""

__version__ = "0.1.0"
