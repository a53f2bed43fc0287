"""Calendar and date helpers."""
