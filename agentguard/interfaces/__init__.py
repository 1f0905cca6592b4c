"""External protocols spoken by the CLI."""
