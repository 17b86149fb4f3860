"""Workflow orchestrators composing ingest, suggestion and persistence steps."""
