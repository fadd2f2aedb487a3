"""Command-line interface for domainssl."""
