"""Cadence: recurring content deliveries configured over chat."""

__version__ = "0.1.0"
