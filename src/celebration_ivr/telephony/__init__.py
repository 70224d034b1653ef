"""Voice gateway integration."""
