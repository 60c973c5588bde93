"""Shared fixtures for member-core tests."""

import pytest

from fakes import FakeCDC, FakeClock, FakeObjects, FakePD
from member_core.config import ReconcilerSettings
from member_core.deps import Dependencies


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ReconcilerSettings(
        resync_seconds=30.0,
        rpc_timeout_seconds=1.0,
        volume_deletion_grace_seconds=300.0,
    )


@pytest.fixture
def objects():
    return FakeObjects()


@pytest.fixture
def pd():
    return FakePD()


@pytest.fixture
def cdc():
    return FakeCDC()


@pytest.fixture
def deps(settings, objects, pd, cdc, clock):
    return Dependencies(
        settings=settings,
        snapshot=objects,
        control=objects,
        pd_control=lambda cluster: pd,
        cdc_control=lambda cluster: cdc,
        clock=clock,
    )
