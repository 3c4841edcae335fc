"""
BidBoard Backend - Domain Layer
================================

Pure data and pure functions; nothing here touches the database or the network.

    types.py           enums and frozen snapshots
    state_machine.py   legal status edges per role
    scoring.py         priority score formula
    access.py          capability checks and list scoping
"""
