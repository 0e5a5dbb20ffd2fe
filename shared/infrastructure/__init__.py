"""
Infrastructure: database sessions, keyed locks, correlation ids, events.
"""
