"""
Pytest fixtures and configuration for imagebundle tests.
"""
import logging
from typing import List
from unittest.mock import MagicMock

import pytest
import structlog

from imagebundle.di import set_container
from imagebundle.interfaces.cloud import CloudClient
from imagebundle.interfaces.metadata import MetadataSource
from imagebundle.poller import PollWaiter
from imagebundle.stages.models import ImageSummary, InstanceMetadata, VolumeAttachment


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        self.now += seconds
        return False


@pytest.fixture(autouse=True)
def reset_global_state():
    """Keep the DI container and logging config from leaking between tests."""
    set_container(None)
    yield
    set_container(None)
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def waiter(fake_clock):
    """PollWaiter with the production timing on a fake clock."""
    return PollWaiter(deadline=1200, interval=10, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.fixture
def metadata():
    return InstanceMetadata(
        instance_id="i-0abc1234",
        availability_zone="us-east-1a",
        virtualization_type="hvm",
        kernel_id=None,
        attachment_device="/dev/sda1",
    )


@pytest.fixture
def metadata_source(metadata):
    source = MagicMock(spec=MetadataSource)
    source.load.return_value = metadata
    return source


@pytest.fixture
def cloud():
    """CloudClient mock for the happy path: root volume at /dev/sda1."""
    client = MagicMock(spec=CloudClient)
    client.list_volume_attachments.return_value = [
        VolumeAttachment(volume_id="vol-root", device="/dev/sda1", name="root"),
        VolumeAttachment(volume_id="vol-data", device="/dev/sdf", name="data"),
    ]
    client.create_snapshot.return_value = "snap-0123"
    client.get_snapshot_state.side_effect = ["pending", "available"]
    client.create_image.return_value = "ami-0456"
    client.find_image_by_resource_id.return_value = ImageSummary(
        id="ami-0456", name="web-image", state="pending"
    )
    return client


@pytest.fixture
def metadata_env():
    """Environment as exported by the instance boot scripts."""
    return {
        "EC2_INSTANCE_ID": "i-0abc1234",
        "EC2_PLACEMENT_AVAILABILITY_ZONE": "eu-west-2b",
        "EC2_BLOCK_DEVICE_MAPPING_ROOT": "/dev/sda1",
    }


# Markers for test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: Slow tests")
