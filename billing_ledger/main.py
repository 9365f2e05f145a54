from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from billing_ledger.core.config import settings
from billing_ledger.core.logging import setup_logging
from billing_ledger.db.mongo import connect_to_mongo, disconnect_from_mongo
from billing_ledger.api.v1.api import api_router
from billing_ledger.api.middleware import RequestContextMiddleware

setup_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestContextMiddleware)

app.add_event_handler("startup", connect_to_mongo)
app.add_event_handler("shutdown", disconnect_from_mongo)

@app.get("/")
async def root():
    return {"message": "Billing Ledger API is running", "environment": settings.ENVIRONMENT}

app.include_router(api_router, prefix=settings.API_V1_STR)
