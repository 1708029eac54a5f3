import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config environment before the marketplace domain is imported.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session", autouse=True)
def setup_db(marketplace_bed):
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db, setup_db

    setup_db(marketplace)

    yield

    drop_db(marketplace)


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from marketplace.catalogue import reset_catalogue
    from marketplace.config import reset_settings
    from marketplace.gateway import reset_gateway
    from marketplace.notifications import reset_notifier
    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    # Collaborator adapters back to their defaults
    reset_catalogue()
    reset_gateway()
    reset_notifier()
    reset_settings()


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------
SELLER_X = "seller-x"
SELLER_Y = "seller-y"


@pytest.fixture()
def catalogue():
    """Two sellers with one product each.

    seller-x sells the shirt (1000.00, Red/M x2 and Blue/L x5) and charges
    150.00 shipping; seller-y sells the mug (500.00, White x10) and uses
    the platform default shipping fee.
    """
    from marketplace.catalogue import set_catalogue
    from marketplace.catalogue.in_memory import InMemoryCatalogue
    from marketplace.catalogue.port import BankDetails, ProductSnapshot, SellerProfile, VariantSnapshot

    catalogue = InMemoryCatalogue()
    catalogue.add_seller(
        SellerProfile(
            seller_id=SELLER_X,
            name="Threads",
            shipping_fee=150.0,
            bank_details=BankDetails(bank_name="Commercial Bank", account_number="0011223344", account_name="Threads"),
        )
    )
    catalogue.add_seller(SellerProfile(seller_id=SELLER_Y, name="Clayworks"))
    catalogue.add_product(
        ProductSnapshot(
            product_id="prod-shirt",
            seller_id=SELLER_X,
            name="Linen Shirt",
            price=1000.0,
            variants=(
                VariantSnapshot(variant_id="shirt-red-m", color_code="RED", color_name="Red", size="M", quantity=2),
                VariantSnapshot(variant_id="shirt-blue-l", color_code="BLU", color_name="Blue", size="L", quantity=5),
            ),
        )
    )
    catalogue.add_product(
        ProductSnapshot(
            product_id="prod-mug",
            seller_id=SELLER_Y,
            name="Clay Mug",
            price=500.0,
            variants=(VariantSnapshot(variant_id="mug-white", color_code="WHT", color_name="White", quantity=10),),
        )
    )
    set_catalogue(catalogue)
    return catalogue


@pytest.fixture()
def notifier():
    from marketplace.notifications import set_notifier
    from marketplace.notifications.fake_adapter import FakeNotifier

    notifier = FakeNotifier()
    set_notifier(notifier)
    return notifier


@pytest.fixture()
def gateway():
    from marketplace.gateway import set_gateway
    from marketplace.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture()
def shipping_address():
    return {
        "full_name": "Nimal Perera",
        "phone": "0771234567",
        "street": "12 Galle Road",
        "city": "Colombo",
        "postal_code": "00300",
        "country": "Sri Lanka",
    }
