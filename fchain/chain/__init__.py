"""Filter chain construction from command-line tokens."""
