"""Budget calendar backend: recurring projection, calendar views and auto-realize."""

__version__ = "0.1.0"
