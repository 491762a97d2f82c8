from hospient.workers.celery_app import celery_app

# Import tasks for registration side effects (Celery worker loads this package).
import hospient.workers.sync  # noqa: F401

__all__ = ["celery_app"]
