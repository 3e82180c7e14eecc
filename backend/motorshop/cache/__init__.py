"""
Cache package: Redis connection management used by the version store.
"""
