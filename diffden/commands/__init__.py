"""Command implementations behind the diffden CLI."""
