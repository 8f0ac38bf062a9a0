"""
                Restaurant Ordering Backend

Restaurant/menu management, order placement with status notifications,
and sales analytics over a relational store.
"""

__version__ = "1.0.0"
