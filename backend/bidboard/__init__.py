"""
BidBoard Backend - Package Initializer
=======================================

Application lifecycle engine for a freelance marketplace: professionals bid
on client projects, clients review and accept one bid, the rest are closed.

    ┌─────────────────────────────────────┐
    │      Routes + Schemas (HTTP)        │  ← thin FastAPI adapter
    ├─────────────────────────────────────┤
    │   Services (ApplicationService,     │  ← unit of work, notifications
    │             NotificationDispatcher) │
    ├─────────────────────────────────────┤
    │   Domain (state machine, access     │  ← pure functions over snapshots
    │           guard, priority scorer)   │
    ├─────────────────────────────────────┤
    │   Repositories + Models (SQLAlchemy)│  ← guarded writes, ORM rows
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
