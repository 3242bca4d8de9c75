"""Command-line entrypoint, bootstrap and slash commands."""
