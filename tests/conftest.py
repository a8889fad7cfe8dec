import pytest

from expense_ocr.pipeline.models.dto import Category
from expense_ocr.services.broker import BrokerMonitor
from expense_ocr.services.job_store import InMemoryJobStore
from fakes import FakePublisher, FakeStorage


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def reachable_broker(publisher):
    broker = BrokerMonitor(publisher.ping, reprobe_interval=0.01)
    broker._reachable = True
    return broker


@pytest.fixture
def categories():
    return [
        Category(id="fuel", name="Fuel", keywords=("petrol", "fuel", "adnoc", "diesel")),
        Category(id="food", name="Food", keywords=("restaurant", "cafe", "meal")),
    ]
