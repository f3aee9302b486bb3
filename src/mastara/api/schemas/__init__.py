"""Pydantic request/response schemas for the Mastara API."""
