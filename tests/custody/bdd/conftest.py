"""Shared BDD fixtures and step definitions for the Custody domain."""

import pytest
from custody.anchoring.reconciliation import command_from_record
from custody.container.container import Container
from custody.container.quorum import load_containers
from custody.errors import CustodyError
from custody.scanning.scan_log import ScanLog
from custody.scanning.validator import ScanContainer
from custody.shipment.shipment import Shipment
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then, when

SUPPLIER = "0x1111111111111111111111111111111111111111"
TRANSPORTER = "0x2222222222222222222222222222222222222222"
WAREHOUSE = "0x3333333333333333333333333333333333333333"
RETAILER = "0x4444444444444444444444444444444444444444"
SECOND_TRANSPORTER = "0x5555555555555555555555555555555555555555"
OTHER_WAREHOUSE = "0x6666666666666666666666666666666666666666"

# Actor names used in feature files → (wallet, role)
ACTORS = {
    "supplier": (SUPPLIER, "supplier"),
    "transporter": (TRANSPORTER, "transporter"),
    "warehouse": (WAREHOUSE, "warehouse"),
    "other warehouse": (OTHER_WAREHOUSE, "warehouse"),
    "retailer": (RETAILER, "retailer"),
    "next transporter": (SECOND_TRANSPORTER, "transporter"),
}


def _shipment(shipment_id):
    return current_domain.repository_for(Shipment).get(shipment_id)


def _container(shipment_id, ordinal):
    return load_containers(_shipment(shipment_id))[ordinal - 1]


def _scan(container, actor, action):
    wallet, role = ACTORS[actor]
    return current_domain.process(
        ScanContainer(raw_token=container.qr_token, action=action, actor_wallet=wallet, actor_role=role),
        asynchronous=False,
    )


def _lock_and_apply(chain, shipment_id):
    shipment = _shipment(shipment_id)
    record = chain.lock_shipment(
        shipment_id,
        shipment.supplier_wallet,
        shipment.batch_id,
        shipment.number_of_containers,
        shipment.quantity_per_container,
    )
    current_domain.process(command_from_record(record), asynchronous=False)
    return record


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured custody errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse("a shipment of {count:d} containers with {quantity:d} units each"),
    target_fixture="shipment_id",
)
def new_shipment(create_shipment, count, quantity):
    return create_shipment(number_of_containers=count, quantity_per_container=quantity)


@given("the shipment is anchored on-chain", target_fixture="anchor_record")
def shipment_anchored(chain, shipment_id):
    return _lock_and_apply(chain, shipment_id)


@given("every container has been picked up")
def every_container_picked_up(shipment_id):
    for container in load_containers(_shipment(shipment_id)):
        _scan(container, "transporter", "PICKUP")


@given("every container has been received")
def every_container_received(shipment_id):
    for container in load_containers(_shipment(shipment_id)):
        _scan(container, "warehouse", "RECEIVE")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the {actor} scans container {ordinal:d} for "{action}"'), target_fixture="scan_outcome")
def actor_scans_container(shipment_id, actor, ordinal, action):
    return _scan(_container(shipment_id, ordinal), actor, action)


@when(parsers.cfparse('the {actor} scans every container for "{action}"'))
def actor_scans_every_container(shipment_id, actor, action):
    for container in load_containers(_shipment(shipment_id)):
        _scan(container, actor, action)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the shipment status is "{status}"'))
def shipment_status_is(shipment_id, status):
    assert _shipment(shipment_id).status == status


@then(parsers.cfparse("the total quantity is {total:d}"))
def total_quantity_is(shipment_id, total):
    assert _shipment(shipment_id).total_quantity == total


@then(parsers.cfparse('every container is "{status}"'))
def every_container_is(shipment_id, status):
    assert {c.status for c in load_containers(_shipment(shipment_id))} == {status}


@then(parsers.cfparse('container {ordinal:d} is "{status}"'))
def container_is(shipment_id, ordinal, status):
    container = _container(shipment_id, ordinal)
    assert current_domain.repository_for(Container).get(container.container_id).status == status


@then("the scan is accepted")
def scan_accepted(scan_outcome):
    assert scan_outcome["result"] == "ACCEPTED"


@then(parsers.cfparse('the scan is rejected with "{code}"'))
def scan_rejected(scan_outcome, code):
    assert scan_outcome["result"] == "REJECTED"
    assert scan_outcome["code"] == code


@then(parsers.cfparse("{count:d} scans are logged for the shipment"))
def scans_logged(shipment_id, count):
    results = current_domain.repository_for(ScanLog)._dao.query.filter(shipment_id=shipment_id).all()
    assert results.total == count


@then(parsers.cfparse('the request is rejected with "{code}"'))
def request_rejected(error, code):
    assert isinstance(error["exc"], CustodyError)
    assert error["exc"].code == code
