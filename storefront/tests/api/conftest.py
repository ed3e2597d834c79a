from typing import Generator

import pytest
from fastapi.testclient import TestClient

from storefront.api.app import app
from storefront.api.dependencies import get_repositories
from storefront.backends import StorefrontRepositories


@pytest.fixture
def client(
    repos: StorefrontRepositories,
) -> Generator[TestClient, None, None]:
    """Test client for the full app, backed by the in-memory repositories."""
    app.dependency_overrides[get_repositories] = lambda: repos
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
