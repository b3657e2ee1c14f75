"""CLI command groups registered by ``quill.main``."""
