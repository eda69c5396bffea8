"""Persistence layer for Spendly."""
