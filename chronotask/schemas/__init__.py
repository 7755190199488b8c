"""Pydantic schemas for events and the HTTP adapter."""
