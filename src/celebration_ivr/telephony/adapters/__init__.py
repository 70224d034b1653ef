"""Voice gateway wire-format adapters."""
