"""Command-line parsing and the run driver."""
