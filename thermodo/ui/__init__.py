"""Console display."""
