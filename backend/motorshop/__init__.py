"""
Motorshop repair-order backend.

Tracks engine repair orders from intake through review, budgeting,
customer approval, shop work and delivery, keeping an append-only audit
trail and derived payment totals for every order.
"""

__version__ = "1.0.0"
