from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from tutoring.config import check_startup_settings, settings
from tutoring.core.time_normalizer import get_time_normalizer
from tutoring.db import Base, engine
from tutoring.routers import groups, schedule, sessions, students
from tutoring.scheduler import start_scheduler, stop_scheduler
from tutoring.services.observability_counters import snapshot_observability_events

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    check_startup_settings()
    Base.metadata.create_all(bind=engine)
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('tutoring.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response


app.include_router(schedule.router)
app.include_router(sessions.router)
app.include_router(students.router)
app.include_router(groups.router)


@app.get('/health')
def healthcheck():
    return {
        'app': settings.app_name,
        'status': 'ok',
        'canonical_timezone': get_time_normalizer().canonical_zone_name,
        'events': snapshot_observability_events(),
    }
