"""Row adapters mapping CSV exports onto engine records."""
