import os
import sys

import pytest

# Make the Lambda sources importable as they are packaged (shared/, handlers/)
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')

from fakes import FakeClock, InMemoryEngagementStore, local_procedures  # noqa: E402
from shared.coordinator import OfferCoordinator  # noqa: E402
from shared.models import EngagementKind  # noqa: E402

T0 = 1_700_000_000_000


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def store():
    return InMemoryEngagementStore(EngagementKind.COMMISSION)


@pytest.fixture
def notifier():
    sent = []

    def notify(engagement, kind):
        sent.append((engagement['engagementId'], kind))

    notify.sent = sent
    return notify


@pytest.fixture
def coordinator(store, clock, notifier):
    return OfferCoordinator(
        EngagementKind.COMMISSION,
        store=store,
        procedures=local_procedures(store, clock),
        notifier=notifier,
        clock=clock
    )
