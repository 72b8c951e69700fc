"""Pydantic data models persisted in the document store."""
