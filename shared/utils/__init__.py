"""
Utilities: exceptions, money arithmetic, request/response schemas.
"""
