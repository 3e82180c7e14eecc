"""
Celery application for background notification delivery.

Tasks are declared with ``shared_task`` so they bind to whichever app is
current; workers start from this module:

    celery -A motorshop.core.celery_app worker -Q notifications
"""

from celery import Celery

from motorshop.core.config import get_settings
from motorshop.core.logging import configure_logging


def create_celery_app() -> Celery:
    """
    Build the Celery application from settings.

    Returns:
        Configured Celery instance with notification routing
    """
    settings = get_settings()

    app = Celery(
        settings.app_name,
        broker=settings.celery_broker_url,
        include=["motorshop.services.notifications.tasks"],
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        task_ignore_result=True,
        task_routes={"notifications.*": {"queue": "notifications"}},
        task_always_eager=settings.is_test,
    )
    return app


configure_logging()

celery_app = create_celery_app()
