"""
Order notifications: dispatch after commit and Celery delivery task.
"""
