"""Command line interface for stepwise."""
