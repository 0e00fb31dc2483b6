"""Tests for the root volume snapshot stage."""
from unittest.mock import MagicMock

import pytest

from imagebundle.errors import (
    ProviderError,
    RootVolumeNotFound,
    SnapshotTimeout,
    TransientProviderError,
)
from imagebundle.interfaces.cloud import CloudClient
from imagebundle.stages.models import BundleRequest, SnapshotState, VolumeAttachment
from imagebundle.stages.snapshot import SnapshotStage


class TestFindRootAttachment:
    """Test root volume resolution."""

    def test_matches_device_by_substring(self, cloud, waiter):
        stage = SnapshotStage(cloud, waiter)

        attachment = stage.find_root_attachment("i-0abc1234")

        assert attachment.volume_id == "vol-root"
        assert attachment.device == "/dev/sda1"
        cloud.list_volume_attachments.assert_called_once_with("i-0abc1234")

    def test_custom_root_device(self, cloud, waiter):
        cloud.list_volume_attachments.return_value = [
            VolumeAttachment(volume_id="vol-xen", device="/dev/xvda"),
        ]
        stage = SnapshotStage(cloud, waiter, root_device="/dev/xvda")

        assert stage.find_root_attachment("i-1").volume_id == "vol-xen"

    def test_no_match_is_fatal(self, cloud, waiter):
        cloud.list_volume_attachments.return_value = [
            VolumeAttachment(volume_id="vol-data", device="/dev/sdf"),
        ]
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(RootVolumeNotFound, match="/dev/sda"):
            stage.create_snapshot("i-1", BundleRequest())

        cloud.create_snapshot.assert_not_called()
        assert cloud.list_volume_attachments.call_count == 1

    def test_multiple_matches_uses_first(self, cloud, waiter):
        cloud.list_volume_attachments.return_value = [
            VolumeAttachment(volume_id="vol-a", device="/dev/sda1"),
            VolumeAttachment(volume_id="vol-b", device="/dev/sda2"),
        ]
        stage = SnapshotStage(cloud, waiter)

        assert stage.find_root_attachment("i-1").volume_id == "vol-a"

    def test_listing_failure_becomes_provider_error(self, cloud, waiter):
        cloud.list_volume_attachments.side_effect = RuntimeError("connection reset")
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(ProviderError, match="connection reset"):
            stage.find_root_attachment("i-1")


class TestCreateSnapshot:
    """Test snapshot creation and waiting."""

    def test_happy_path(self, cloud, waiter, fake_clock):
        stage = SnapshotStage(cloud, waiter)

        handle = stage.create_snapshot("i-0abc1234", BundleRequest(name="nightly", description="db"))

        assert handle.id == "snap-0123"
        assert handle.state is SnapshotState.AVAILABLE
        assert handle.volume_id == "vol-root"
        assert handle.device == "/dev/sda1"
        cloud.create_snapshot.assert_called_once_with("vol-root", name="nightly", description="db")
        assert cloud.get_snapshot_state.call_count == 2
        assert fake_clock.sleeps == [10]

    def test_absent_request_fields_are_omitted(self, cloud, waiter):
        stage = SnapshotStage(cloud, waiter)

        stage.create_snapshot("i-1", BundleRequest())

        cloud.create_snapshot.assert_called_once_with("vol-root")

    def test_only_description(self, cloud, waiter):
        stage = SnapshotStage(cloud, waiter)

        stage.create_snapshot("i-1", BundleRequest(description="weekly"))

        cloud.create_snapshot.assert_called_once_with("vol-root", description="weekly")

    def test_polling_keeps_snapshot_id(self, cloud, waiter):
        cloud.get_snapshot_state.side_effect = ["pending", "pending", "pending", "completed"]
        stage = SnapshotStage(cloud, waiter)

        handle = stage.create_snapshot("i-1", BundleRequest())

        assert handle.id == "snap-0123"
        assert {c.args[0] for c in cloud.get_snapshot_state.call_args_list} == {"snap-0123"}

    def test_create_failure_is_not_retried(self, cloud, waiter):
        cloud.create_snapshot.side_effect = ProviderError("SnapshotLimitExceeded")
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(ProviderError, match="SnapshotLimitExceeded"):
            stage.create_snapshot("i-1", BundleRequest())

        assert cloud.create_snapshot.call_count == 1
        cloud.get_snapshot_state.assert_not_called()

    def test_transient_create_failure_is_still_fatal(self, cloud, waiter):
        cloud.create_snapshot.side_effect = TransientProviderError("RequestLimitExceeded")
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(ProviderError):
            stage.create_snapshot("i-1", BundleRequest())

        assert cloud.create_snapshot.call_count == 1

    def test_timeout_carries_snapshot_id(self, cloud, waiter, fake_clock):
        cloud.get_snapshot_state.side_effect = None
        cloud.get_snapshot_state.return_value = "pending"
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(SnapshotTimeout) as exc_info:
            stage.create_snapshot("i-1", BundleRequest())

        assert exc_info.value.snapshot_id == "snap-0123"
        assert 1200 <= fake_clock.now < 1210

    def test_transient_state_errors_are_retried(self, cloud, waiter):
        cloud.get_snapshot_state.side_effect = [
            TransientProviderError("InvalidSnapshot.NotFound"),
            "pending",
            "available",
        ]
        stage = SnapshotStage(cloud, waiter)

        handle = stage.create_snapshot("i-1", BundleRequest())

        assert handle.state is SnapshotState.AVAILABLE
        assert cloud.get_snapshot_state.call_count == 3

    def test_other_state_errors_fail_fast(self, cloud, waiter):
        cloud.get_snapshot_state.side_effect = ProviderError("UnauthorizedOperation")
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(ProviderError, match="UnauthorizedOperation"):
            stage.create_snapshot("i-1", BundleRequest())

        assert cloud.get_snapshot_state.call_count == 1

    def test_failed_snapshot_stops_polling(self, cloud, waiter):
        cloud.get_snapshot_state.side_effect = ["pending", "error"]
        stage = SnapshotStage(cloud, waiter)

        with pytest.raises(ProviderError) as exc_info:
            stage.create_snapshot("i-1", BundleRequest())

        assert not isinstance(exc_info.value, SnapshotTimeout)
        assert exc_info.value.snapshot_id == "snap-0123"
        assert cloud.get_snapshot_state.call_count == 2


class TestSnapshotState:
    """Test provider state mapping."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("available", SnapshotState.AVAILABLE),
            ("completed", SnapshotState.AVAILABLE),
            ("pending", SnapshotState.PENDING),
            ("creating", SnapshotState.PENDING),
            (None, SnapshotState.PENDING),
            ("failed", SnapshotState.FAILED),
            ("error", SnapshotState.FAILED),
        ],
    )
    def test_from_provider(self, raw, expected):
        assert SnapshotState.from_provider(raw) is expected


def test_default_stage_uses_production_timing():
    stage = SnapshotStage(MagicMock(spec=CloudClient))

    assert stage.waiter.deadline == 20 * 60
    assert stage.waiter.interval == 10
    assert stage.root_device == "/dev/sda"
