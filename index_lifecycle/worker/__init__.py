"""Lifecycle worker package."""
