# app/schemas/__init__.py
"""
Request / response models.

Import from the concrete module, e.g.
    from app.schemas.batch import BatchCreate, BatchOut
"""

__all__: list[str] = []
