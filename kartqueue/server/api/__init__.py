"""Versioned REST API."""
