"""
Pydantic schemas for order lifecycle inputs.
"""
