import os

import pytest
from custody.anchoring.reconciliation import command_from_record
from custody.chain import reset_chain, set_chain
from custody.chain.fake_adapter import FakeChain
from custody.container.quorum import load_containers
from custody.directory import reset_directory, set_directory
from custody.directory.fake_adapter import FakeActorDirectory
from custody.documents import reset_document_store, set_document_store
from custody.documents.fake_adapter import FakeDocumentStore
from custody.scanning.validator import ScanContainer
from custody.shipment.assignment import StageNextLeg
from custody.shipment.creation import CreateShipment
from custody.shipment.shipment import Shipment
from protean import current_domain

SUPPLIER = "0x1111111111111111111111111111111111111111"
TRANSPORTER = "0x2222222222222222222222222222222222222222"
WAREHOUSE = "0x3333333333333333333333333333333333333333"
RETAILER = "0x4444444444444444444444444444444444444444"
SECOND_TRANSPORTER = "0x5555555555555555555555555555555555555555"
OTHER_WAREHOUSE = "0x6666666666666666666666666666666666666666"
ADMIN = "0x7777777777777777777777777777777777777777"
OUTSIDER = "0x8888888888888888888888888888888888888888"


@pytest.fixture(scope="session")
def _custody_domain(request):
    """Initialize the custody domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from custody.domain import custody

    custody.init()
    return custody


@pytest.fixture(scope="session", autouse=True)
def setup_db(_custody_domain):
    from custody.utils.db import drop_db, setup_db

    setup_db(_custody_domain)

    yield

    drop_db(_custody_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_custody_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _custody_domain.domain_context()
    ctx.push()

    yield

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


@pytest.fixture(autouse=True)
def directory():
    """A fresh actor directory with one active actor per role."""
    fake = FakeActorDirectory()
    fake.register(SUPPLIER, "supplier", name="Acme Pharma")
    fake.register(TRANSPORTER, "transporter", name="Fast Freight")
    fake.register(WAREHOUSE, "warehouse", name="Central Depot")
    fake.register(RETAILER, "retailer", name="Corner Pharmacy")
    fake.register(SECOND_TRANSPORTER, "transporter", name="Last Mile Co")
    fake.register(OTHER_WAREHOUSE, "warehouse", name="North Depot")
    fake.register(ADMIN, "admin")
    set_directory(fake)
    yield fake
    reset_directory()


@pytest.fixture(autouse=True)
def chain():
    fake = FakeChain()
    set_chain(fake)
    yield fake
    reset_chain()


@pytest.fixture(autouse=True)
def document_store():
    fake = FakeDocumentStore()
    set_document_store(fake)
    yield fake
    reset_document_store()


# ---------------------------------------------------------------------------
# Shipment fixtures
# ---------------------------------------------------------------------------
def _containers_of(shipment_id):
    return load_containers(current_domain.repository_for(Shipment).get(shipment_id))


def _scan(container, action, wallet, role, **extra):
    return current_domain.process(
        ScanContainer(raw_token=container.qr_token, action=action, actor_wallet=wallet, actor_role=role, **extra),
        asynchronous=False,
    )


def _scan_all(shipment_id, action, wallet, role):
    return [_scan(container, action, wallet, role) for container in _containers_of(shipment_id)]


@pytest.fixture()
def containers_of():
    """Load a shipment's containers in ordinal order."""
    return _containers_of


@pytest.fixture()
def scan():
    """Scan one container through the ScanContainer command."""
    return _scan


@pytest.fixture()
def scan_all():
    """Scan every container of a shipment with the same action."""
    return _scan_all


@pytest.fixture()
def create_shipment():
    def _create(**overrides):
        defaults = {
            "supplier_wallet": SUPPLIER,
            "actor_role": "supplier",
            "batch_id": "BATCH-001",
            "product_name": "Insulin pens",
            "number_of_containers": 3,
            "quantity_per_container": 10,
            "assigned_transporter": TRANSPORTER,
            "assigned_warehouse": WAREHOUSE,
        }
        defaults.update(overrides)
        return current_domain.process(CreateShipment(**defaults), asynchronous=False)

    return _create


@pytest.fixture()
def anchor(chain):
    """Lock a shipment on the fake chain and apply the lock record."""

    def _anchor(shipment_id):
        shipment = current_domain.repository_for(Shipment).get(shipment_id)
        record = chain.lock_shipment(
            shipment_id,
            shipment.supplier_wallet,
            shipment.batch_id,
            shipment.number_of_containers,
            shipment.quantity_per_container,
        )
        return current_domain.process(command_from_record(record), asynchronous=False)

    return _anchor


@pytest.fixture()
def anchored_shipment(create_shipment, anchor):
    """A 3 x 10 shipment, anchored and READY_FOR_DISPATCH on leg 1."""
    shipment_id = create_shipment()
    anchor(shipment_id)
    return shipment_id


@pytest.fixture()
def shipment_in_transit(anchored_shipment):
    _scan_all(anchored_shipment, "PICKUP", TRANSPORTER, "transporter")
    return anchored_shipment


@pytest.fixture()
def shipment_at_warehouse(shipment_in_transit):
    _scan_all(shipment_in_transit, "RECEIVE", WAREHOUSE, "warehouse")
    return shipment_in_transit


@pytest.fixture()
def staged_shipment(shipment_at_warehouse):
    """At the warehouse with the onward transporter and retailer staged."""
    current_domain.process(
        StageNextLeg(
            shipment_id=shipment_at_warehouse,
            next_transporter=SECOND_TRANSPORTER,
            retailer=RETAILER,
            actor_wallet=WAREHOUSE,
            actor_role="warehouse",
        ),
        asynchronous=False,
    )
    return shipment_at_warehouse
