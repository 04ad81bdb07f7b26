"""Pydantic schemas for the Play Sessions API."""
