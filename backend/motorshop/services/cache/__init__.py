"""
Cache invalidation services.
"""
