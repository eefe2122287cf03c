"""Text command protocol."""
