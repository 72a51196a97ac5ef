import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.config import cors_origins
from backend.app.api.routes.core import router as core_router
from backend.app.api.routes.transactions import router as transactions_router
from backend.app.api.routes.obligations import router as obligations_router
from backend.app.api.routes.debts import router as debts_router
from backend.app.api.routes.planning import router as planning_router
from backend.app.api.routes.summary import router as summary_router
from backend.app.api.routes.audit import router as audit_router


logger = logging.getLogger(__name__)


app = FastAPI(title="Finflow API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def _unhandled_exception(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "internal_error", "message": "Unexpected server error"}},
    )


app.include_router(core_router)

app.include_router(transactions_router)
app.include_router(obligations_router)
app.include_router(debts_router)
app.include_router(planning_router)
app.include_router(summary_router)
app.include_router(audit_router)
