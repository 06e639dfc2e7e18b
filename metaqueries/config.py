# -*- coding: utf-8 -*-
"""
Meta Queries Configuration

Settings of the query-orchestration layer. Each field of
:class:`MetaQueriesConfig` can be overridden by the environment variable
``METAQUERIES_<FIELD NAME IN UPPER CASE>``; a value that does not parse is
logged and the default kept.

The scheduler and the transform engine take the config they were built
with. Code that is not handed one reads the process-wide instance from
:func:`get_config`.

Example:
    >>> import os
    >>> os.environ["METAQUERIES_DATASOURCE_NAME"] = "Derived"
    >>> MetaQueriesConfig.from_env().datasource_name
    'Derived'

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_ENV_PREFIX = "METAQUERIES_"


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("true", "1", "yes")


# Keyed by the annotation text; annotations are strings under
# ``from __future__ import annotations``.
_PARSERS: Dict[str, Callable[[str], Any]] = {
    "str": str,
    "bool": _parse_bool,
    "int": int,
    "float": float,
}


@dataclass
class MetaQueriesConfig:
    """Meta Queries settings.

    Attributes:
        datasource_name: Name under which the layer is registered. Targets
            whose ``datasource`` equals it are derived targets.
        log_level: Level applied to the ``metaqueries`` logger by the
            service facade.
        expression_fallback_value: Value emitted for an Arithmetic point
            whose expression cannot be evaluated.
        refetch_hidden_targets: Re-query hidden backend targets on their
            own with ``hide`` off, so derived targets can read them.
        max_targets_per_request: Requests with more targets are rejected.
        enable_metrics: Record Prometheus metrics.
    """

    datasource_name: str = "MetaQueries"
    log_level: str = "INFO"
    expression_fallback_value: float = 0.0
    refetch_hidden_targets: bool = True
    max_targets_per_request: int = 100
    enable_metrics: bool = True

    @classmethod
    def from_env(cls) -> MetaQueriesConfig:
        """Build a config from ``METAQUERIES_*`` environment variables.

        Booleans are true for ``true``, ``1`` or ``yes`` in any case.
        """
        overrides: Dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            env_name = f"{_ENV_PREFIX}{field.name.upper()}"
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                overrides[field.name] = _PARSERS[field.type](raw)
            except ValueError:
                logger.warning(
                    "Invalid %s for %s=%s, using default %s",
                    field.type, env_name, raw, field.default,
                )

        config = cls(**overrides)
        logger.info(
            "MetaQueriesConfig loaded: datasource_name=%s, fallback=%s, "
            "refetch_hidden=%s, max_targets=%d, metrics=%s",
            config.datasource_name,
            config.expression_fallback_value,
            config.refetch_hidden_targets,
            config.max_targets_per_request,
            config.enable_metrics,
        )
        return config


_config_instance: Optional[MetaQueriesConfig] = None
_config_lock = threading.Lock()


def get_config() -> MetaQueriesConfig:
    """Return the process-wide config, loading it from the environment once."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = MetaQueriesConfig.from_env()
    return _config_instance


def set_config(config: MetaQueriesConfig) -> None:
    """Install ``config`` as the process-wide config."""
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.debug("MetaQueriesConfig replaced")


def reset_config() -> None:
    """Drop the process-wide config; the next ``get_config`` reloads it."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "MetaQueriesConfig",
    "get_config",
    "set_config",
    "reset_config",
]
