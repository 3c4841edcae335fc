"""
BidBoard Backend - Repository Layer
====================================

    base.py                    Repository interface consumed by the services
    sqlalchemy_repository.py   AsyncSession-backed implementation
"""
