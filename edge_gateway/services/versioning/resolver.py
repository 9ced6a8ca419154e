"""
Compatibility Resolver

Decides which API version a single request is served with.

Rules, in order:
    1. An explicitly requested version that the registry knows is always
       honored, even an old one (mid-session downgrade/upgrade).
    2. Otherwise the client's app version is compared with the minimum app
       version of the registry's current active version: capable clients get
       the active version, older clients get the fallback version.
    3. An unknown requested version ("v99") is ignored and rule 2 applies.

Resolution never raises; a negotiation problem degrades to a known version
instead of failing the request.

Version: 1.0.0
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from edge_gateway.services.versioning.registry import VersionRegistry

if TYPE_CHECKING:
    from edge_gateway.services.dispatch.base import ClientContext

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\d+")


def parse_app_version(version) -> tuple[int, int, int]:
    """
    Parse a semantic version into a comparable (major, minor, patch) tuple.

    Tolerates a leading "v", missing parts and pre-release suffixes;
    anything unparseable counts as 0.

        >>> parse_app_version("1.4.0")
        (1, 4, 0)
        >>> parse_app_version("v2.1-beta")
        (2, 1, 0)
        >>> parse_app_version("garbage")
        (0, 0, 0)
    """
    if not isinstance(version, str):
        return (0, 0, 0)

    parts = version.strip().lstrip("vV").split(".")
    numbers = []
    for part in (parts + ["0", "0", "0"])[:3]:
        match = _LEADING_DIGITS.match(part.strip())
        numbers.append(int(match.group()) if match else 0)
    return numbers[0], numbers[1], numbers[2]


def meets_min_version(current, minimum) -> bool:
    """Check if an app version is at least the required minimum."""
    return parse_app_version(current) >= parse_app_version(minimum)


@dataclass(frozen=True)
class Resolution:
    """Outcome of version negotiation for one request."""
    version: str
    used_fallback: bool
    reason: str


class CompatibilityResolver:
    """Resolves the effective API version for a client context."""

    def __init__(self, registry: VersionRegistry):
        self.registry = registry

    def resolve(self, context: "ClientContext") -> Resolution:
        requested = context.requested_api_version

        if requested and self.registry.is_known_version(requested):
            return Resolution(version=requested, used_fallback=False, reason="explicit")

        if requested:
            logger.warning(
                f"Ignoring unrecognized API version {requested!r} "
                f"(request {context.request_id})"
            )

        # One read of the snapshot so current/fallback always belong together
        config = self.registry.get_active_version()
        minimum = self.registry.min_app_version_for(config.current)

        if meets_min_version(context.app_version, minimum):
            return Resolution(version=config.current, used_fallback=False, reason="active")

        logger.info(
            f"Client {context.app_name} {context.app_version} is below {minimum} "
            f"required by {config.current}; serving fallback {config.fallback}"
        )
        return Resolution(version=config.fallback, used_fallback=True, reason="fallback")
