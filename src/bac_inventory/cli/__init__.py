"""Command-line interface for the inventory pipeline."""
