"""Pydantic models for requests, events and configuration."""
