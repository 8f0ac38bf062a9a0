"""
                        Services Module

Business logic behind the HTTP routes.

Services:
    - identity: bearer credential and role checks
    - orders: order lifecycle (create, list for owner, status updates)
    - analytics: sales reports, popular items, exports
    - notifications: notification sink and Mock/Real delivery services
"""
