"""Companion Hub: acquires, configures, launches and supervises companion apps."""

__version__ = "0.1.0"
