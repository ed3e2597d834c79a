"""
API routers for the storefront.

- checkout: placing orders and committing prepaid payments
- orders: the customer's own orders and their cancellation state
- cancellations: filing cancellation requests and uploading evidence
- admin: operator views and actions
- system: health
"""
