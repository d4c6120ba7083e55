"""Filter registry descriptors and introspection."""
