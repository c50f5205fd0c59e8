import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator

from config import settings
from core.trust_debt.bridge import run_trust_debt
from core.trust_debt.errors import TrustDebtError
from core.trust_debt.models import ENGINE_VERSION
from signal_tables import InvalidSignal, build_signal_table

# -------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("trustdebt")

# -------------------------------------------------------------------
# FastAPI App
# -------------------------------------------------------------------

app = FastAPI(
    title="Trust Debt API",
    version="1.0.0",
    description="Trust Debt: intent vs. reality divergence as one graded score.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------------------------------------------------
# Models
# -------------------------------------------------------------------

class AnalyzeRequest(BaseModel):
    categories: List[Dict[str, Any]]
    signal: Dict[str, Any]
    previousTotalUnits: Optional[float] = Field(default=None, ge=0)
    runId: Optional[str] = None

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if len(v) > 500:
            raise ValueError("Too many categories (max 500)")
        return v

# -------------------------------------------------------------------
# Routes
# -------------------------------------------------------------------

@app.get("/")
def root():
    return {"status": "ok", "service": "Trust Debt API", "version": "1.0.0"}


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "engine_version": ENGINE_VERSION,
    }


@app.post("/analyze")
def analyze(payload: AnalyzeRequest):
    logger.info("Analysis started: categories=%d", len(payload.categories))

    signal = build_signal_table(payload.signal)
    report = run_trust_debt(
        definitions=payload.categories,
        signal=signal,
        config=settings.engine_config,
        previous_total=payload.previousTotalUnits,
        run_id=payload.runId,
    )

    logger.info(
        "Analysis complete: run_id=%s total=%.2f grade=%s",
        report.meta.run_id, report.result.total_units, report.result.grade,
    )
    # model_dump_json keeps +inf asymmetry as the Infinity constant
    return Response(content=report.model_dump_json(), media_type="application/json")


@app.exception_handler(TrustDebtError)
async def trust_debt_exception_handler(request: Request, exc: TrustDebtError):
    logger.warning("Rejected input: %s", exc)
    content = exc.to_dict()
    content.update({"status_code": 422, "path": str(request.url)})
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(InvalidSignal)
async def invalid_signal_handler(request: Request, exc: InvalidSignal):
    logger.warning("Rejected signal: %s", exc)
    return JSONResponse(
        status_code=422,
        content={"error": "InvalidSignal", "message": str(exc), "status_code": 422, "path": str(request.url)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
