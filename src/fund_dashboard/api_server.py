"""
Fund Dashboard API Server.

FastAPI application exposing fund metrics, projections, portfolio waterfalls
and the two upload formats over HTTP.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncGenerator, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import API_HOST, API_PORT, LOG_LEVEL, LOG_FORMAT
from .data.dashboard_service import DashboardService
from .data.upload_formats import MULTI_FUND_FORMAT, SINGLE_FUND_FORMAT, UploadFormatError
from .engines.projection_engine import FUND_TYPE_EXPECTATIONS, PORTFOLIO_SCENARIOS

logger = logging.getLogger(__name__)


# --- DATA MODELS ---

class UploadRequest(BaseModel):
    """Schema for an uploaded file body."""
    content: str


class MultiFundUploadResponse(BaseModel):
    fund_ids: List[str]
    funds_created: int
    cashflows_created: int


class SingleFundUploadResponse(BaseModel):
    fund_id: str
    fund_created: bool
    templates_created: int


# --- APP FACTORY ---

def create_app(service: Optional[DashboardService] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        service: Service to serve from; when None one is built from config on startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Opens the collection store on startup."""
        logger.info("Starting Fund Dashboard API...")
        if getattr(app.state, "service", None) is None:
            app.state.service = DashboardService()
        logger.info("✅ Dashboard service ready")

        yield

        logger.info("Shutting down Fund Dashboard API.")

    app = FastAPI(
        title="Fund Dashboard API",
        version="1.0.0",
        description="Cashflow metrics, projections and portfolio waterfalls for committed fund investments.",
        lifespan=lifespan
    )
    app.state.service = service

    def get_service(request: Request) -> DashboardService:
        current = request.app.state.service
        if current is None:
            raise HTTPException(status_code=503, detail="Dashboard service is not initialized yet.")
        return current

    # --- ENDPOINTS ---

    @app.get("/health")
    def health_check(request: Request):
        """Endpoint to check if the server is running and the store is open."""
        if request.app.state.service is not None:
            return {"status": "ok", "service_ready": True}
        return {"status": "initializing", "service_ready": False}

    @app.get("/fund-types")
    def list_fund_types():
        return [asdict(expectation) for expectation in FUND_TYPE_EXPECTATIONS]

    @app.get("/scenarios")
    def list_scenarios():
        return [asdict(scenario) for scenario in PORTFOLIO_SCENARIOS]

    @app.get("/funds/{fund_id}/metrics")
    def fund_metrics(fund_id: str, request: Request):
        metrics = get_service(request).fund_metrics(fund_id)
        if metrics is None:
            raise HTTPException(status_code=404, detail=f"Fund {fund_id} not found")
        return metrics

    @app.get("/funds/{fund_id}/projection")
    def fund_projection(fund_id: str, request: Request, scenario: Optional[str] = None):
        projection = get_service(request).fund_projection(fund_id, scenario)
        if projection is None:
            raise HTTPException(status_code=404, detail=f"Fund {fund_id} not found")
        return projection

    @app.get("/portfolios/{portfolio_id}/waterfall")
    def portfolio_waterfall(portfolio_id: str, request: Request):
        waterfall = get_service(request).analyze_portfolio(portfolio_id)
        if waterfall is None:
            raise HTTPException(status_code=404, detail=f"Portfolio {portfolio_id} not found")
        waterfall["yearly"] = [entry.to_dict() for entry in waterfall["yearly"]]
        return waterfall

    @app.post("/uploads/multi-fund", response_model=MultiFundUploadResponse)
    def upload_multi_fund(body: UploadRequest, request: Request):
        try:
            result = get_service(request).import_upload(MULTI_FUND_FORMAT, body.content)
        except UploadFormatError as e:
            logger.warning(f"Rejected multi-fund upload: {e}")
            raise HTTPException(status_code=422, detail=str(e))
        return MultiFundUploadResponse(**result)

    @app.post("/uploads/single-fund", response_model=SingleFundUploadResponse)
    def upload_single_fund(body: UploadRequest, request: Request):
        try:
            result = get_service(request).import_upload(SINGLE_FUND_FORMAT, body.content)
        except UploadFormatError as e:
            logger.warning(f"Rejected single-fund upload: {e}")
            raise HTTPException(status_code=422, detail=str(e))
        return SingleFundUploadResponse(**result)

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    uvicorn.run(app, host=API_HOST, port=API_PORT)
