"""Declarative base for Spendly models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
