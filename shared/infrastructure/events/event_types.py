"""
Event type constants published on session and restaurant channels.
"""

# Session lifecycle
SESSION_STARTED = "SESSION_STARTED"
SESSION_PAUSED = "SESSION_PAUSED"
SESSION_RESUMED = "SESSION_RESUMED"
BILL_REQUESTED = "BILL_REQUESTED"
SESSION_COMPLETED = "SESSION_COMPLETED"
SESSION_CANCELLED = "SESSION_CANCELLED"
SESSION_EXPIRED = "SESSION_EXPIRED"

# Membership
GUEST_JOINED = "GUEST_JOINED"
GUEST_LEFT = "GUEST_LEFT"

# Shared cart (real-time sync between guests)
CART_ITEM_ADDED = "CART_ITEM_ADDED"
CART_ITEM_UPDATED = "CART_ITEM_UPDATED"
CART_ITEM_REMOVED = "CART_ITEM_REMOVED"

# Orders
ORDER_SUBMITTED = "ORDER_SUBMITTED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
TIP_UPDATED = "TIP_UPDATED"

# Waiter calls
WAITER_CALLED = "WAITER_CALLED"
WAITER_ACKNOWLEDGED = "WAITER_ACKNOWLEDGED"

# Maximum serialized event size in bytes
MAX_EVENT_SIZE = 64 * 1024
