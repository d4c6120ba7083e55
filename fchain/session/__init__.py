"""Interactive session monitoring."""
