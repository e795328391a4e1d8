# This file bootstraps the FastAPI app: middlewares for request context and
# logging, the single error handler for tour errors, the versioned routers
# and the Prometheus endpoint.

import os

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from boarding.api.tours import router as tours_router
from boarding.core.db import Base, engine
from boarding.core.errors import BoardingError, handle_error
from boarding.core.logging import APILoggingMiddleware
from boarding.sites.middleware import RequestContextMiddleware


API_V1_PREFIX = "/api/v1"

# Create tables for local runs; deployments use the alembic migrations.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Boarding")


@app.exception_handler(BoardingError)
def handle_boarding_error(request: Request, exc: BoardingError):
    context = {
        "request_id": getattr(request.state, "request_id", None),
        "path": request.url.path,
    }
    payload = handle_error(exc, context)
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["X-Error-Code"] = payload["category"]
    return response


app.add_middleware(APILoggingMiddleware)

api_v1 = APIRouter(prefix=API_V1_PREFIX)
api_v1.include_router(tours_router)
app.include_router(api_v1)

# Added last so it runs first and request.state is populated for logging.
app.add_middleware(RequestContextMiddleware)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/ping")
@app.get(f"{API_V1_PREFIX}/health")
def ping():
    return {"message": "pong"}
