"""Shared constants, schemas and helpers used by backend and frontend."""
