"""
Shared constants for EventPass.
"""

# Archive sessions in presentation order
SESSION_KEY_ORDER = ("A", "B", "C", "D", "E1", "E2", "F")

# Zoom registration keys in notification order
REGISTRATION_KEY_ORDER = ("A", "B", "C", "D", "E", "F")

# Registration key sent with every purchase (closing session)
SHARED_REGISTRATION_KEY = "F"

# Checkout payment statuses that grant entitlement
QUALIFYING_PAYMENT_STATUSES = ("paid", "no_payment_required")

# Billing provider page-size ceilings
CUSTOMER_PAGE_LIMIT = 10
SUBSCRIPTION_PAGE_LIMIT = 100
SESSION_PAGE_LIMIT = 100
LINE_ITEM_PAGE_LIMIT = 100

# Rate limiting for POST /archive/verify
DEFAULT_ARCHIVE_RATE_LIMIT = 5
DEFAULT_ARCHIVE_RATE_WINDOW_SECONDS = 600

# Notification retry schedule (seconds between attempts)
NOTIFICATION_MAX_ATTEMPTS = 3
NOTIFICATION_RETRY_DELAYS = (1.0, 2.0, 4.0)

# Timeouts
DEFAULT_STRIPE_TIMEOUT = 20.0
DEFAULT_HTTP_TIMEOUT = 10.0

# Webhook event handled by this service
CHECKOUT_COMPLETED = "checkout.session.completed"
