"""Shared async and helper utilities."""
