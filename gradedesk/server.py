# FILE: gradedesk/server.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from gradedesk.core.config import LOG_LEVEL, cors_origins
from gradedesk.core.database import engine, init_models
from gradedesk.core.errors import StoreError
from gradedesk.api import assignments, auth, credits, reference_documents, root

# ================== LOGGING ==================

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("gradedesk")

# ================== APP ==================

app = FastAPI(title="GradeDesk")

app.include_router(root.router)
app.include_router(auth.router)
app.include_router(assignments.router)
app.include_router(reference_documents.router)
app.include_router(credits.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": exc.to_http_detail()})


# ================== LIFECYCLE ==================

@app.on_event("startup")
async def startup():
    await init_models()


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()
