"""Student registry (read-only to the call core)."""
