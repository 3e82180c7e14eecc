"""
Business services for the repair-order backend.
"""
