"""Cross-cutting infrastructure: settings-aware logging, database sessions, dates, errors."""
