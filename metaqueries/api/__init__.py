# -*- coding: utf-8 -*-
"""Meta Queries HTTP API."""

from metaqueries.api.router import router

__all__ = ["router"]
