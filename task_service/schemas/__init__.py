"""Pydantic schemas for Task Service."""
