import pytest

from dtm_discovery.driver_registry import DriverRegistry
from dtm_discovery.resolver import ResolverRegistry


@pytest.fixture(autouse=True)
def isolated_registries():
    """Driver instances and address resolvers are process-wide; give each test a clean table."""
    saved_instances = dict(DriverRegistry.driver_instances)
    saved_resolvers = dict(ResolverRegistry.resolvers)
    DriverRegistry.clear()
    ResolverRegistry.clear()
    yield
    DriverRegistry.clear()
    DriverRegistry.driver_instances.update(saved_instances)
    ResolverRegistry.clear()
    ResolverRegistry.resolvers.update(saved_resolvers)
