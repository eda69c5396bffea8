"""Core approval logic for Spendly."""
