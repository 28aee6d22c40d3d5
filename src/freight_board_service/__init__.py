"""Freight board service: task lifecycle, carrier bidding and assignment."""

__version__ = "0.1.0"
