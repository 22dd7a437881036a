"""Worker utilities."""
