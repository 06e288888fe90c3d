# app/db/__init__.py
"""
Database layer.

    app.db.base     declarative Base + model registry (init_models)
    app.db.session  async engine, session factory, FastAPI dependency

Nothing is re-exported: importing app.db must not build an engine.
"""

__all__: list[str] = []
