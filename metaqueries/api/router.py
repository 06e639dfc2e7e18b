# -*- coding: utf-8 -*-
"""
Meta Queries REST API Router

FastAPI router exposing the Meta Queries Service at ``/api/v1/metaqueries``:

- POST /query  - Answer a panel query
- GET  /health - Connectivity test

Error mapping for POST /query:
    - TargetValidationError, DependencyOrderError -> 400
    - ResolutionError                             -> 404
    - any backend failure                         -> 502

Author: Meta Queries Team
Date: October 2026
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from metaqueries.exceptions import MetaQueriesException, ResolutionError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/metaqueries",
    tags=["metaqueries"],
)


def _svc(request: Request) -> Any:
    """Get the configured service for route handlers."""
    from metaqueries.setup import get_metaqueries
    return get_metaqueries(request.app)


# ------------------------------------------------------------------
# 1. POST /query - Answer a panel query
# ------------------------------------------------------------------
@router.post("/query")
async def post_query(body: Dict[str, Any], request: Request) -> Dict[str, Any]:
    """Answer a panel query with the flattened series of every target."""
    try:
        response = await _svc(request).query(body)
    except ResolutionError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict())
    except MetaQueriesException as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict())
    except Exception as exc:
        logger.error("Backend failure while answering query: %s", exc)
        raise HTTPException(
            status_code=502,
            detail={"error_type": type(exc).__name__, "message": str(exc)},
        )
    return response.model_dump(mode="json")


# ------------------------------------------------------------------
# 2. GET /health - Connectivity test
# ------------------------------------------------------------------
@router.get("/health")
async def get_health(request: Request) -> Dict[str, Any]:
    """Report that the Meta Queries layer is reachable."""
    result = await _svc(request).test_connection()
    return result.model_dump()


__all__ = ["router"]
