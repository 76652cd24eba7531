"""Cafeteria billing -- monthly invoicing with per-company minimum-meal guarantees."""

__version__ = "1.0.0"
