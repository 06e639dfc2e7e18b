# -*- coding: utf-8 -*-
"""
Meta Queries Service Facade

Provides the main service class and FastAPI integration functions:
- MetaQueriesService: Composes config, backend gateway, transform engine
  and scheduler into a single facade
- configure_metaqueries(app): Register service on FastAPI app
- get_metaqueries(app): Retrieve service from app state
- get_router(): Return FastAPI router for mounting

Example:
    >>> from fastapi import FastAPI
    >>> from metaqueries.setup import configure_metaqueries
    >>> app = FastAPI()
    >>> service = configure_metaqueries(app)
    >>> service.register_backend("graphite", GraphiteHandle())

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Union

from metaqueries.backend_gateway import BackendGateway, BackendHandle
from metaqueries.config import MetaQueriesConfig, get_config
from metaqueries.models import HealthCheckResult, QueryRequest, QueryResponse
from metaqueries.scheduler import QueryScheduler
from metaqueries.transforms import TransformEngine

logger = logging.getLogger(__name__)


class MetaQueriesService:
    """Facade composing the Meta Queries components.

    Attributes:
        config: MetaQueriesConfig instance.
        gateway: BackendGateway instance.
        engine: TransformEngine instance.
        scheduler: QueryScheduler instance.
    """

    def __init__(
        self,
        config: Optional[MetaQueriesConfig] = None,
        gateway: Optional[BackendGateway] = None,
    ) -> None:
        """Initialize the Meta Queries Service.

        Args:
            config: MetaQueriesConfig instance. If None, loads from env.
            gateway: Optional pre-populated backend registry.
        """
        self.config = config or get_config()
        logging.getLogger("metaqueries").setLevel(self.config.log_level.upper())

        self.gateway = gateway if gateway is not None else BackendGateway()
        self.engine = TransformEngine(config=self.config)
        self.scheduler = QueryScheduler(
            self.gateway, engine=self.engine, config=self.config,
        )

        logger.info(
            "MetaQueriesService initialized as datasource %s",
            self.config.datasource_name,
        )

    # =========================================================================
    # Backend Registration Delegation
    # =========================================================================

    def register_backend(self, name: str, handle: BackendHandle) -> None:
        """Register a backend handle. Delegates to BackendGateway."""
        self.gateway.register(name, handle)

    def unregister_backend(self, name: str) -> bool:
        """Remove a backend handle. Delegates to BackendGateway."""
        return self.gateway.unregister(name)

    # =========================================================================
    # Query Delegation
    # =========================================================================

    async def query(self, request: Union[QueryRequest, Mapping]) -> QueryResponse:
        """Answer a panel query. Delegates to QueryScheduler.

        Args:
            request: QueryRequest or wire-format mapping.

        Returns:
            Flattened QueryResponse.
        """
        return await self.scheduler.query(request)

    def query_sync(self, request: Union[QueryRequest, Mapping]) -> QueryResponse:
        """Blocking variant of :meth:`query` for callers without a loop.

        Raises:
            RuntimeError: If called from a running event loop.
        """
        return asyncio.run(self.scheduler.query(request))

    async def test_connection(self) -> HealthCheckResult:
        """Connectivity test. Delegates to QueryScheduler."""
        return await self.scheduler.test_connection()

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """Get comprehensive service statistics.

        Returns:
            Dictionary with statistics from all components.
        """
        return {
            "datasource_name": self.config.datasource_name,
            "scheduler": self.scheduler.get_statistics(),
            "transforms": self.engine.get_statistics(),
            "gateway": self.gateway.get_statistics(),
        }


# =============================================================================
# FastAPI Integration
# =============================================================================

_SERVICE_KEY = "metaqueries_service"


def configure_metaqueries(
    app: Any,
    config: Optional[MetaQueriesConfig] = None,
) -> MetaQueriesService:
    """Register the Meta Queries Service on a FastAPI application.

    Creates the service, attaches it to app.state, and includes the
    API router.

    Args:
        app: FastAPI application instance.
        config: Optional configuration.

    Returns:
        Configured MetaQueriesService instance.
    """
    service = MetaQueriesService(config=config)
    setattr(app.state, _SERVICE_KEY, service)

    app.include_router(get_router())

    logger.info("Meta Queries Service configured on FastAPI app")
    return service


def get_metaqueries(app: Any) -> MetaQueriesService:
    """Retrieve the Meta Queries Service from a FastAPI application.

    Raises:
        RuntimeError: If service not configured.
    """
    service = getattr(app.state, _SERVICE_KEY, None)
    if service is None:
        raise RuntimeError(
            "Meta Queries Service not configured. "
            "Call configure_metaqueries(app) first."
        )
    return service


def get_router():
    """Return the FastAPI router for the Meta Queries Service."""
    from metaqueries.api.router import router
    return router


__all__ = [
    "MetaQueriesService",
    "configure_metaqueries",
    "get_metaqueries",
    "get_router",
]
