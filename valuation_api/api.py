"""
Valuation API.

============================================================
RESPONSIBILITY
============================================================
Serves the composite snapshot, single indicators, health and
forced refresh over REST. Degraded data is still a 200; a 500
only means the aggregator itself raised.
============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from valuation_engine.aggregator import ValuationAggregator
from valuation_engine.factory import build_aggregator
from valuation_engine.models import IndicatorKey

logger = logging.getLogger(__name__)


SERVICE_NAME = "Market Cycle Tracker API"
VERSION = "1.0.0"


# ============================================================
# Response Models
# ============================================================

class HealthResponse(BaseModel):
    status: str
    cached: bool
    cacheFreshness: Dict[str, str]
    sources: Dict[str, Any]
    timestamp: str
    version: str = VERSION


# ============================================================
# FastAPI Application
# ============================================================

def _aggregator(request: Request) -> ValuationAggregator:
    aggregator = request.app.state.aggregator
    if aggregator is None:
        raise HTTPException(status_code=503, detail="Aggregator not initialized")
    return aggregator


def create_app(aggregator: Optional[ValuationAggregator] = None) -> FastAPI:
    """
    Build the API.

    An injected aggregator is used as-is and left open on shutdown;
    otherwise one is built from configuration at startup and closed on exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.aggregator is None
        if owned:
            app.state.aggregator = build_aggregator()
        logger.info(f"{SERVICE_NAME} started")
        try:
            yield
        finally:
            if owned:
                await app.state.aggregator.close()
                app.state.aggregator = None
            logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Market valuation indicators, historical percentiles and a composite score",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================
    # API Endpoints
    # ============================================================

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "docs": "/docs",
            "endpoints": ["/api/current", "/api/indicators/{key}", "/api/health", "/api/refresh"],
        }

    @app.get("/api/current", tags=["Indicators"])
    async def current(request: Request):
        """Composite snapshot with every indicator."""
        try:
            snapshot = await _aggregator(request).get_all_indicators()
        except HTTPException:
            raise
        except Exception as e:
            logger.exception(f"Composite assembly failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return snapshot.to_dict()

    @app.get("/api/indicators/{key}", tags=["Indicators"])
    async def indicator(key: str, request: Request):
        """Single indicator by wire name (cape, buffett, creditSpread, sp500)."""
        try:
            indicator_key = IndicatorKey.parse(key)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Unknown indicator: {key}")
        if indicator_key not in IndicatorKey.indicators():
            raise HTTPException(status_code=404, detail=f"Unknown indicator: {key}")

        try:
            result = await _aggregator(request).get_indicator(indicator_key)
        except HTTPException:
            raise
        except Exception as e:
            logger.exception(f"Indicator {key} failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return result.to_dict()

    @app.get("/api/health", response_model=HealthResponse, tags=["Health"])
    async def health(request: Request):
        """Cache freshness and per-source health."""
        aggregator = _aggregator(request)
        sources = aggregator.source_health()
        summary = sources.get("health_summary", {})
        status = "degraded" if summary.get("unavailable", 0) else "ok"

        return HealthResponse(
            status=status,
            cached=aggregator.cache.has_entries(),
            cacheFreshness=aggregator.cache_freshness(),
            sources=sources,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.api_route("/api/refresh", methods=["GET", "POST"], tags=["Indicators"])
    async def refresh(request: Request):
        """Force a fetch round, bypassing cache freshness."""
        try:
            snapshot = await _aggregator(request).refresh()
        except HTTPException:
            raise
        except Exception as e:
            logger.exception(f"Refresh failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"success": True, "data": snapshot.to_dict()}

    return app


app = create_app()
