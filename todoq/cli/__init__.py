"""Command-line interface for todoq."""
