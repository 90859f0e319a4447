"""
EntomoGuide Backend: Application Package Initializer
=====================================================

What: Marks the `entomoguide` directory as a Python package.
Who:  Used by uvicorn (`entomoguide.main:app`), Alembic, and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← workflow, attachments, catalog
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← injected async engine/sessions
    └─────────────────────────────────────┘

    Collaborators (database, file storage, notification dispatcher) are built
    by the application factory and stored on `app.state`; nothing below the
    route layer reaches for a module-level connection.
"""

__version__ = "1.0.0"
