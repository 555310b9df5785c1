"""
StudyCare Backend — Application Package Initializer
=====================================================

What: The StudyCare edtech API: AI tutoring (chat, image, voice, notes,
      symptom guidance), classrooms, study pods and caregiver monitoring.
Who:  Imported by uvicorn (`studycare.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │      Routes + Dependencies (API)    │  ← HTTP, auth, role gates
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← rules, AI orchestration
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Database / Supabase / AI providers │  ← collaborators
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
