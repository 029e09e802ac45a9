"""
Database Module

This module provides the SQLAlchemy models and the attempt repository backed
by them.
"""

from aptitest.database.base import Base, ModelBase, metadata
from aptitest.database.models import AttemptRecord

__all__ = ['Base', 'ModelBase', 'metadata', 'AttemptRecord']
