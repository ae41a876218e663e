import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from booking.core import config
from booking.database import Base, engine, ensure_availability_schema, ensure_appointment_schema
from booking.jobs.completion_job import run_completion_job
from booking.jobs.reminder_job import run_reminder_job
from booking.models import user, appointment, availability  # noqa: F401
from booking.routes import appointment_routes, availability_routes

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title='Appointment Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler()


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
def start_background_jobs() -> None:
    if not config.ENABLE_BACKGROUND_JOBS:
        logger.info('Background jobs disabled')
        return

    _scheduler.add_job(
        run_completion_job,
        'interval',
        seconds=config.COMPLETION_SWEEP_INTERVAL_SECONDS,
        id='appointment_completion',
        replace_existing=True,
    )
    _scheduler.add_job(
        run_reminder_job,
        'interval',
        seconds=config.REMINDER_SWEEP_INTERVAL_SECONDS,
        id='appointment_reminders',
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(
        'Background jobs started: completion every %ss, reminders every %ss',
        config.COMPLETION_SWEEP_INTERVAL_SECONDS,
        config.REMINDER_SWEEP_INTERVAL_SECONDS,
    )


@app.on_event('shutdown')
def stop_background_jobs() -> None:
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


@app.get('/')
def root():
    return {'status': 'Appointment Scheduling API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(availability_routes.router, prefix='/availability')
