"""Concrete adapters for the service-layer ports."""
