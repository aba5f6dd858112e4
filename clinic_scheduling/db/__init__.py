"""Persistence layer: ORM models, enums and session management."""
