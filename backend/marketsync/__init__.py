"""
MarketSync Backend — Package Initializer
=========================================

What: Social distribution and conversation synchronization layer for a
      two-sided services marketplace (consumers and providers).
Who:  Imported by the FastAPI shell, Alembic, and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │     Routes (HTTP / WebSocket shell) │  ← thin, one call per route
    ├─────────────────────────────────────┤
    │   Managers (follow, feed, chat...)  │  ← business rules, validation
    ├─────────────────────────────────────┤
    │  Identity adapter  │  Schemas       │  ← typed records over documents
    ├─────────────────────────────────────┤
    │  Persistent Store (memory | SQL)    │  ← document store + change feed
    └─────────────────────────────────────┘

    Every manager receives its store and identity adapter through its
    constructor; nothing below the routes reaches for a global store.
"""

__version__ = "1.0.0"
