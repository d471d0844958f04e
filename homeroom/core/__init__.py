"""Core pipeline modules."""
