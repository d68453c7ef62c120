"""
Catalog domain package.

This package contains:
- Stored document models for users, books and reviews
- Ownership, pagination, identifier and rating rules
- The error taxonomy surfaced by the API
- MongoDB connection and index management
"""

__version__ = "1.0.0"
