"""Remote browse-by-screenshot service."""
