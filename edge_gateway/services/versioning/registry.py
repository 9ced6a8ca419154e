"""
API Version Registry

Single source of truth for the deployed API versions, the operations each
version defines, the deployment regions, and which version is currently
"active" (served to capable clients) and "fallback" (served to clients
whose app is too old for the active contract).

The active/fallback pair is published as one immutable snapshot. Readers
take a single attribute read on every request; writers validate and swap
the whole snapshot under a lock, so a request sees either the old or the
new pair and never a mix of both.

Version: 1.0.0
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from edge_gateway.core.errors import VersionConfigError

logger = logging.getLogger(__name__)


# Human-readable names for the known deployment regions
REGION_NAMES = {
    "us-east-1": "US East (N. Virginia)",
    "us-west-2": "US West (Oregon)",
    "eu-west-1": "EU (Ireland)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
}

_VERSION_NUMBER = re.compile(r"^v(\d+)$")


class VersionStatus(str, Enum):
    """Lifecycle state of an API version."""
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    RETIRED = "retired"


@dataclass(frozen=True)
class ApiVersion:
    """
    A named, ordered API contract revision.

    Attributes:
        identifier: Version name ("v1", "v2", ...)
        status: active, deprecated or retired
        min_app_version: Oldest client app version that understands it
        operations: Operation names this version implements itself
    """
    identifier: str
    status: VersionStatus = VersionStatus.ACTIVE
    min_app_version: str = "0.0.0"
    operations: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        if not _VERSION_NUMBER.match(self.identifier):
            raise ValueError(f"Invalid API version identifier: {self.identifier!r}")

    @property
    def number(self) -> int:
        return int(self.identifier[1:])

    def is_older_than(self, other: "ApiVersion") -> bool:
        return self.number < other.number

    @property
    def is_servable(self) -> bool:
        return self.status != VersionStatus.RETIRED

    def to_dict(self) -> dict:
        return {
            "version": self.identifier,
            "status": self.status.value,
            "min_app_version": self.min_app_version,
            "operations": sorted(self.operations),
        }


@dataclass(frozen=True)
class ActiveVersionConfig:
    """Immutable snapshot of the active/fallback pointers."""
    current: str
    fallback: str
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "fallback": self.fallback,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class RegionInfo:
    """A deployment region."""
    identifier: str
    name: str
    is_primary: bool = False

    def to_dict(self) -> dict:
        return {
            "region": self.identifier,
            "name": self.name,
            "is_primary": self.is_primary,
        }


class VersionRegistry:
    """
    Known API versions, deployment regions and the active/fallback pointers.

    Everything except the active/fallback snapshot is fixed at construction.

    Example:
        >>> registry = VersionRegistry(
        ...     versions=[ApiVersion("v1"), ApiVersion("v2", min_app_version="1.2.0")],
        ...     regions=["us-east-1", "eu-west-1"],
        ...     primary_region="us-east-1",
        ... )
        >>> registry.get_active_version().current
        'v1'
        >>> registry.set_active_version("v2", "v1").current
        'v2'
    """

    def __init__(
        self,
        versions: Iterable[ApiVersion],
        regions: Iterable[str],
        primary_region: Optional[str] = None,
    ):
        ordered = sorted(versions, key=lambda v: v.number)
        if not ordered:
            raise ValueError("At least one API version is required")

        identifiers = [v.identifier for v in ordered]
        duplicates = {v for v in identifiers if identifiers.count(v) > 1}
        if duplicates:
            raise ValueError(f"Duplicate API versions: {sorted(duplicates)}")

        servable = [v for v in ordered if v.is_servable]
        if not servable:
            raise ValueError("Every configured API version is retired")

        region_ids = list(dict.fromkeys(regions))
        if not region_ids:
            raise ValueError("At least one region is required")
        primary = primary_region or region_ids[0]
        if primary not in region_ids:
            raise ValueError(f"Primary region {primary!r} is not a configured region")

        self._ordered: tuple[ApiVersion, ...] = tuple(ordered)
        self._by_id: dict[str, ApiVersion] = {v.identifier: v for v in ordered}
        self._primary_region = primary
        self._regions: tuple[RegionInfo, ...] = tuple(
            RegionInfo(
                identifier=region,
                name=REGION_NAMES.get(region, region),
                is_primary=region == primary,
            )
            for region in region_ids
        )

        oldest = servable[0].identifier
        self._bootstrap = ActiveVersionConfig(
            current=oldest,
            fallback=oldest,
            updated_at=datetime.now(timezone.utc),
        )
        self._active: Optional[ActiveVersionConfig] = None
        self._write_lock = threading.Lock()

    # =========================================================================
    # VERSIONS
    # =========================================================================

    @property
    def versions(self) -> tuple[ApiVersion, ...]:
        """All registered versions, oldest first."""
        return self._ordered

    def get_version(self, identifier: str) -> Optional[ApiVersion]:
        if not isinstance(identifier, str):
            return None
        return self._by_id.get(identifier)

    def is_known_version(self, identifier) -> bool:
        """True for registered versions that are not retired."""
        version = self.get_version(identifier)
        return version is not None and version.is_servable

    def operations_defined_by(self, identifier: str) -> frozenset:
        version = self.get_version(identifier)
        return version.operations if version else frozenset()

    def versions_at_or_below(self, identifier: str) -> list[ApiVersion]:
        """
        The fallthrough chain for a version: itself, then each older one.

        Returns an empty list for unregistered identifiers.
        """
        version = self.get_version(identifier)
        if version is None:
            return []
        return [v for v in reversed(self._ordered) if v.number <= version.number]

    def min_app_version_for(self, identifier: str) -> str:
        version = self.get_version(identifier)
        return version.min_app_version if version else "0.0.0"

    # =========================================================================
    # ACTIVE / FALLBACK POINTERS
    # =========================================================================

    def get_active_version(self) -> ActiveVersionConfig:
        """
        Current and fallback versions with the time they were last switched.

        Never fails: before the first update this returns the bootstrap
        default (oldest servable version as both current and fallback).
        """
        snapshot = self._active
        return snapshot if snapshot is not None else self._bootstrap

    @property
    def is_initialized(self) -> bool:
        return self._active is not None

    def set_active_version(
        self,
        current: str,
        fallback: str,
        updated_at: Optional[datetime] = None,
    ) -> ActiveVersionConfig:
        """
        Publish a new active/fallback pair.

        Takes effect for every request that starts after the swap.

        Raises:
            VersionConfigError: Unknown/retired version, or a fallback
                newer than the current version
        """
        for label, identifier in (("current", current), ("fallback", fallback)):
            if not self.is_known_version(identifier):
                raise VersionConfigError(
                    f"Cannot use {identifier!r} as {label} version: not a servable API version"
                )

        if self._by_id[current].is_older_than(self._by_id[fallback]):
            raise VersionConfigError(
                f"Fallback version {fallback} must not be newer than current version {current}"
            )

        snapshot = ActiveVersionConfig(
            current=current,
            fallback=fallback,
            updated_at=updated_at or datetime.now(timezone.utc),
        )

        with self._write_lock:
            previous = self.get_active_version()
            self._active = snapshot

        logger.info(
            f"Active API version switched: current {previous.current} -> {current}, "
            f"fallback {previous.fallback} -> {fallback}"
        )
        return snapshot

    # =========================================================================
    # REGIONS
    # =========================================================================

    @property
    def primary_region(self) -> str:
        return self._primary_region

    def list_regions(self) -> list[str]:
        """Deployment region identifiers in configured order."""
        return [region.identifier for region in self._regions]

    def region_info(self) -> list[RegionInfo]:
        return list(self._regions)

    def is_known_region(self, region) -> bool:
        return isinstance(region, str) and region in self.list_regions()
