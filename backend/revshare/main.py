# Bootstraps the admin trigger API: structured logging and metrics
# middleware, error handlers for engine errors, and the admin routers.
# Batch entry points live in revshare.jobs and do not need this app.

import os

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from revshare.api.admin_payouts import router as admin_payouts_router
from revshare.api.admin_rewards import router as admin_rewards_router
from revshare.core.db import Base, engine
from revshare.core.errors import CommissionError
from revshare.core.logging import APILoggingMiddleware
from revshare.core.metrics import MetricsMiddleware
import revshare.models  # noqa: F401

# Create tables for local runs. Deployments apply the Alembic migrations.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="revshare")


@app.exception_handler(CommissionError)
def handle_commission_error(_request, exc: CommissionError):
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    response.headers["X-Error-Code"] = exc.code
    return response


app.add_middleware(APILoggingMiddleware)
app.add_middleware(MetricsMiddleware)

app.include_router(admin_payouts_router)
app.include_router(admin_rewards_router)


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok"}


# /metrics endpoint (Prometheus scraping)
@app.get("/metrics", include_in_schema=False)
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
