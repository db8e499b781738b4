"""
Models package — export all SQLAlchemy models.
"""

from certimos.models.base import Base
from certimos.models.deployment import Deployment

__all__ = ["Base", "Deployment"]
