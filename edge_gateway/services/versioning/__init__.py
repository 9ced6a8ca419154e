"""
Versioning Service Factory

Builds the process-wide Version Registry from settings and the operation
table, and the Compatibility Resolver that reads it.

Usage:
    from edge_gateway.services.versioning import get_version_registry, get_resolver

    registry = get_version_registry()
    resolution = get_resolver().resolve(client_context)

The registry is a singleton per process: it holds the active/fallback
snapshot that the version admin endpoint swaps at runtime.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from edge_gateway.core.config import Settings, get_settings
from edge_gateway.core.errors import VersionConfigError
from edge_gateway.services.versioning.registry import (
    REGION_NAMES,
    ActiveVersionConfig,
    ApiVersion,
    RegionInfo,
    VersionRegistry,
    VersionStatus,
)
from edge_gateway.services.versioning.resolver import (
    CompatibilityResolver,
    Resolution,
    meets_min_version,
    parse_app_version,
)

logger = logging.getLogger(__name__)


def build_version_registry(settings: Settings, table=None) -> VersionRegistry:
    """
    Create a registry from settings.

    Args:
        settings: Application settings
        table: OperationTable supplying each version's operation names
            (defaults to the built-in versioned operation table)

    Returns:
        VersionRegistry with active/fallback set from settings
    """
    if table is None:
        from edge_gateway.services.operations import get_operation_table
        table = get_operation_table()

    deprecated = set(settings.deprecated_api_versions_list)
    retired = set(settings.retired_api_versions_list)
    minimums = settings.min_app_versions_map

    versions = []
    for identifier in settings.api_versions_list:
        if identifier in retired:
            status = VersionStatus.RETIRED
        elif identifier in deprecated:
            status = VersionStatus.DEPRECATED
        else:
            status = VersionStatus.ACTIVE
        versions.append(ApiVersion(
            identifier=identifier,
            status=status,
            min_app_version=minimums.get(identifier, "0.0.0"),
            operations=frozenset(table.names_for(identifier)),
        ))

    registry = VersionRegistry(
        versions=versions,
        regions=settings.regions_list,
        primary_region=settings.primary_region,
    )

    try:
        registry.set_active_version(
            settings.active_api_version,
            settings.fallback_api_version,
        )
    except VersionConfigError as e:
        active = registry.get_active_version()
        logger.error(
            f"Configured active/fallback versions rejected ({e}); "
            f"serving bootstrap default {active.current}/{active.fallback}"
        )

    return registry


@lru_cache()
def get_version_registry() -> VersionRegistry:
    """Get the process-wide version registry."""
    registry = build_version_registry(get_settings())
    logger.info(
        f"Version registry ready: versions={[v.identifier for v in registry.versions]} "
        f"regions={registry.list_regions()} primary={registry.primary_region}"
    )
    return registry


@lru_cache()
def get_resolver() -> CompatibilityResolver:
    """Get the compatibility resolver bound to the process-wide registry."""
    return CompatibilityResolver(get_version_registry())


def reset_versioning() -> None:
    """
    Clear the cached registry and resolver.

    Useful for testing; the next call to get_version_registry() rebuilds
    the registry from settings.
    """
    get_version_registry.cache_clear()
    get_resolver.cache_clear()
    logger.debug("Versioning cache cleared")


__all__ = [
    "REGION_NAMES",
    "ActiveVersionConfig",
    "ApiVersion",
    "RegionInfo",
    "VersionRegistry",
    "VersionStatus",
    "CompatibilityResolver",
    "Resolution",
    "meets_min_version",
    "parse_app_version",
    "build_version_registry",
    "get_version_registry",
    "get_resolver",
    "reset_versioning",
]
