"""Shared group budgets with row-level access control."""

__version__ = "0.1.0"
