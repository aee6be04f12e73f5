"""Pydantic params and response schemas, one module per service."""
