"""
Pytest configuration and fixtures.
"""
import pytest

from config.settings import Settings
from internal.container import build_services
from tests.fakes import (
    FakeCatalog,
    FakeIndexGateway,
    FakeStateStore,
    make_category,
    make_product,
)


@pytest.fixture
def settings():
    """Settings independent of the environment."""
    return Settings(_env_file=None, public_sales_channel_id=None)


@pytest.fixture
def category_tree():
    """Mercedes Benz > Motor > Dichtungen, plus an unrelated root."""
    return [
        make_category("pcat_mb", "Mercedes Benz"),
        make_category("pcat_motor", "Motor", parent="pcat_mb"),
        make_category("pcat_dicht", "Dichtungen", parent="pcat_motor"),
        make_category("pcat_zubehoer", "Zubehör"),
    ]


@pytest.fixture
def catalog(category_tree):
    """Catalog with the category tree and one product in Dichtungen."""
    dichtungen = category_tree[2]
    return FakeCatalog(
        categories=category_tree,
        products=[make_product("prod_1", "Zylinderkopfdichtung", categories=[dichtungen])],
        availability={"prod_1_v1": 3},
    )


@pytest.fixture
def gateway():
    """Empty in-memory index."""
    return FakeIndexGateway()


@pytest.fixture
def state():
    """Empty in-memory sync state."""
    return FakeStateStore()


@pytest.fixture
def services(settings, catalog, gateway, state):
    """Use cases wired against the fakes."""
    return build_services(settings, catalog, gateway, state)
