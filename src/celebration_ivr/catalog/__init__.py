"""Event type, level type, gift and text catalogs."""
