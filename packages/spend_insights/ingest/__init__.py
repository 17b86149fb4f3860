"""Ingest helpers: CSV transaction import and category seeding."""
