"""Core domain — models, composer services, engine, persistence."""
