"""User interface for carelog."""
