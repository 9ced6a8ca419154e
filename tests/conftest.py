"""
Shared fixtures: a three-region registry (active v3, fallback v1) wired to
the in-memory backend, telemetry store and delivery transport.
"""

import pytest
from fastapi.testclient import TestClient

from edge_gateway.core.config import Settings, get_settings
from edge_gateway.services.backend import MockDataBackend, get_data_backend
from edge_gateway.services.dispatch import ClientContext, OperationDispatcher
from edge_gateway.services.fanout import (
    DisabledEventPublisher,
    InlineEventPublisher,
    MockDeliveryTransport,
    RegionFanoutBroadcaster,
    get_broadcaster,
    get_delivery_transport,
)
from edge_gateway.services.gateway import RequestGateway, get_request_gateway
from edge_gateway.services.operations import build_operation_table
from edge_gateway.services.telemetry import MockTelemetryStore, get_telemetry_store
from edge_gateway.services.versioning import (
    CompatibilityResolver,
    build_version_registry,
    get_version_registry,
)

TEST_REGIONS = ["us-east-1", "us-west-2", "eu-west-1"]


def make_settings(**overrides) -> Settings:
    values = {
        "env_mode": "development",
        "regions": ",".join(TEST_REGIONS),
        "primary_region": "us-east-1",
        "active_api_version": "v3",
        "fallback_api_version": "v1",
        "fanout_publisher": "inline",
        "admin_token": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client(app_version="1.0.0", api_version=None, app_name="customer", region=None):
    return ClientContext(
        app_name=app_name,
        app_version=app_version,
        request_id="req_test",
        requested_api_version=api_version,
        client_region=region,
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def registry(settings):
    return build_version_registry(settings)


@pytest.fixture
def resolver(registry) -> CompatibilityResolver:
    return CompatibilityResolver(registry)


@pytest.fixture
def backend() -> MockDataBackend:
    return MockDataBackend()


@pytest.fixture
def store() -> MockTelemetryStore:
    return MockTelemetryStore()


@pytest.fixture
def transport() -> MockDeliveryTransport:
    return MockDeliveryTransport()


@pytest.fixture
def broadcaster(registry, transport, store) -> RegionFanoutBroadcaster:
    return RegionFanoutBroadcaster(
        registry=registry,
        transport=transport,
        store=store,
        timeout_seconds=0.05,
        max_retries=2,
        retry_delay_seconds=0,
    )


@pytest.fixture
def dispatcher(registry, backend) -> OperationDispatcher:
    return OperationDispatcher(registry=registry, table=build_operation_table(), backend=backend)


@pytest.fixture
def publisher(broadcaster) -> InlineEventPublisher:
    return InlineEventPublisher(broadcaster)


@pytest.fixture
def gateway(registry, resolver, dispatcher, store, publisher) -> RequestGateway:
    return RequestGateway(
        registry=registry,
        resolver=resolver,
        dispatcher=dispatcher,
        telemetry=store,
        event_publisher=publisher,
    )


@pytest.fixture
def client(settings, registry, resolver, dispatcher, backend, store, transport, broadcaster):
    """TestClient with every service dependency pointed at the fixtures."""
    from edge_gateway.main import app

    # Each TestClient request runs on its own event loop; background fanout
    # tasks would not survive it, so HTTP tests publish nothing.
    api_gateway = RequestGateway(
        registry=registry,
        resolver=resolver,
        dispatcher=dispatcher,
        telemetry=store,
        event_publisher=DisabledEventPublisher(),
    )

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_version_registry] = lambda: registry
    app.dependency_overrides[get_request_gateway] = lambda: api_gateway
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_telemetry_store] = lambda: store
    app.dependency_overrides[get_data_backend] = lambda: backend
    app.dependency_overrides[get_delivery_transport] = lambda: transport

    yield TestClient(app)

    app.dependency_overrides.clear()
