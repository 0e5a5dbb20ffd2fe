"""
Numa group dining session service.

- models/: SQLAlchemy ORM models
- services/domain/: table registry, membership, cart, lifecycle, staff queries
- services/session_sweeper.py: abandoned-session sweeper
- routers/: guest, staff and auth REST surface
- client/: Python REST client
"""
