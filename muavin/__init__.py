"""muavin - personal automation assistant."""

__version__ = "0.4.0"
__logo__ = "🛰️"
