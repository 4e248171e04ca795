"""Pydantic schemas (API I/O and repository read models)."""
