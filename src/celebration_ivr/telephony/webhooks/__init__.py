"""Voice gateway webhook endpoints."""
