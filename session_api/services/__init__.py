"""
Services module for business logic.

- domain/: domain services, one per aggregate concern
- session_events.py: event builders for the publisher
- session_sweeper.py: periodic expiry and pointer repair

Usage:
    from session_api.services.domain import SessionLifecycleService
    result = SessionLifecycleService(db).create_or_join(table.id, "Alice")
"""
