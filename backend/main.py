import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import register_exception_handlers
from backend.database import create_database
from backend.models import appointment, doctor, medical_record, patient, user  # noqa: F401
from backend.routes import (
    appointment_routes,
    auth_routes,
    doctor_routes,
    medical_record_routes,
    patient_routes,
    user_routes,
)

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

config.validate_runtime_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        app.state.database.connect()
    except SQLAlchemyError:
        # Requests retry the connection; /api/health reports the failure meanwhile.
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
    yield
    app.state.database.disconnect()


app = FastAPI(title=config.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_exception_handlers(app)

app.state.database = create_database()


@app.get('/api/health')
def health():
    database = app.state.database.health_check()
    ready = database['state'] == 'ready'
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={'status': 'ok' if ready else 'degraded', 'database': database},
    )


app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(patient_routes.router, prefix='/api/patients')
app.include_router(doctor_routes.router, prefix='/api/doctors')
app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(medical_record_routes.router, prefix='/api/medical-records')
