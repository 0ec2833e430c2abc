from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .auth_api import router as auth_router
from .config import settings
from .db import init_db
from .logging_config import setup_logging
from .middleware import RequestTracingMiddleware, SecurityHeadersMiddleware

setup_logging()
if settings.DB_AUTO_CREATE_ALL:
    init_db()

app = FastAPI(
    title="Booking Desk",
    description="Reservation management API for service bookings",
    version="0.1.0",
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestTracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/ping")
def ping():
    return {"ok": True}


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router)
app.include_router(auth_router)
