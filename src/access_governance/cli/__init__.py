"""Command-line interface for access-governance."""
