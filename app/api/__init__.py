# app/api/__init__.py
"""
API package.

No re-exports here; routers are mounted by app/api/router.py.
"""

__all__ = []
