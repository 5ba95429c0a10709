from celery import Celery

from floorplan_core.settings import get_settings


def create_app() -> Celery:
    settings = get_settings()
    celery_app = Celery(
        "floorplan-worker",
        broker=settings.queue.broker_url,
        backend=settings.queue.result_backend,
    )
    celery_app.conf.task_default_queue = "floorplan"
    celery_app.conf.task_routes = {
        "services.worker.tasks.*": {"queue": "floorplan"},
    }
    # one blueprint per worker process at a time
    celery_app.conf.worker_prefetch_multiplier = 1
    celery_app.conf.worker_concurrency = settings.max_workers
    return celery_app


app = create_app()


@app.task(name="services.worker.tasks.health")
def health() -> str:
    return "ok"


# register task modules with this app
from services.worker import tasks  # noqa: E402,F401

__all__ = ["app", "create_app", "health"]
