"""Membership lookups and row-level access rules."""
