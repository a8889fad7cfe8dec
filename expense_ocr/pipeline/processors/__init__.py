"""Text processors: invoice page selection, field extraction, category suggestion."""
