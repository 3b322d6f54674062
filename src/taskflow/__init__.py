"""TaskFlow: a personal task tracker with an optional AI helper."""

__version__ = "0.1.0"
