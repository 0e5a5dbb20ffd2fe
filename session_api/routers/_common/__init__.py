"""
Router helpers shared across the guest and staff surfaces.
"""
