"""Base SQLAlchemy declarative base for tenantguard's own tables"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
