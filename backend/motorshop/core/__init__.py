"""
Core package for shared configuration, logging and task queue setup.
"""
