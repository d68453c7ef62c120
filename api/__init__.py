"""
FastAPI REST API for the Book Review service.

This module provides a REST API for:
- Registering users and issuing bearer tokens
- Browsing the paginated book catalog
- Adding, editing and deleting books
- One review per book per user, with average ratings
"""
