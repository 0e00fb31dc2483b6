#!/usr/bin/env python3
"""Snapshot the root volume of a running instance."""

from typing import List, Optional

import structlog

from ..errors import (
    DeadlineExceeded,
    ProviderError,
    RootVolumeNotFound,
    SnapshotTimeout,
    TransientProviderError,
)
from ..interfaces.cloud import CloudClient
from ..poller import PollWaiter
from .models import (
    DEFAULT_ROOT_DEVICE,
    BundleRequest,
    SnapshotHandle,
    SnapshotState,
    VolumeAttachment,
)

log = structlog.get_logger(__name__)


class SnapshotStage:
    """Locate the root volume, snapshot it and wait for the snapshot."""

    def __init__(
        self,
        cloud: CloudClient,
        waiter: Optional[PollWaiter] = None,
        root_device: str = DEFAULT_ROOT_DEVICE,
    ):
        self.cloud = cloud
        self.waiter = waiter or PollWaiter()
        self.root_device = root_device

    def create_snapshot(self, instance_id: str, request: BundleRequest) -> SnapshotHandle:
        """Snapshot the instance's root volume and block until it is available.

        Args:
            instance_id: Instance whose root volume is captured
            request: Optional name/description for the snapshot

        Returns:
            SnapshotHandle in the AVAILABLE state
        """
        attachment = self.find_root_attachment(instance_id)

        handle = self.start_snapshot(attachment, request)
        self.wait_for_snapshot(handle)
        return handle

    def find_root_attachment(self, instance_id: str) -> VolumeAttachment:
        """Return the attachment whose device matches the root device."""
        log.info("snapshot.locating_root_volume", instance_id=instance_id, device=self.root_device)
        try:
            attachments = self.cloud.list_volume_attachments(instance_id)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Failed to list volumes of {instance_id}: {e}") from e

        matches: List[VolumeAttachment] = [a for a in attachments if self.root_device in a.device]

        if not matches:
            raise RootVolumeNotFound(
                f"No volume attached at {self.root_device} on {instance_id}. "
                "The root device name varies with hypervisor and kernel; "
                "instance-store images are not supported."
            )
        if len(matches) > 1:
            log.warning(
                "snapshot.multiple_root_candidates",
                devices=[a.device for a in matches],
                using=matches[0].device,
            )

        attachment = matches[0]
        log.info(
            "snapshot.root_volume_found",
            volume_id=attachment.volume_id,
            volume_name=attachment.name,
            device=attachment.device,
        )
        return attachment

    def start_snapshot(self, attachment: VolumeAttachment, request: BundleRequest) -> SnapshotHandle:
        """Request a snapshot of the attached volume."""
        kwargs = {}
        if request.name:
            kwargs["name"] = request.name
        if request.description:
            kwargs["description"] = request.description

        try:
            snapshot_id = self.cloud.create_snapshot(attachment.volume_id, **kwargs)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Failed to snapshot {attachment.volume_id}: {e}") from e
        log.info("snapshot.requested", snapshot_id=snapshot_id, volume_id=attachment.volume_id)
        return SnapshotHandle(
            id=snapshot_id,
            state=SnapshotState.PENDING,
            volume_id=attachment.volume_id,
            device=attachment.device,
        )

    def wait_for_snapshot(self, handle: SnapshotHandle) -> SnapshotHandle:
        """Poll until the snapshot is available, updating ``handle.state``."""
        try:
            self.waiter.wait_until(lambda: self._refresh(handle), f"snapshot {handle.id}")
        except DeadlineExceeded as e:
            raise SnapshotTimeout(str(e), snapshot_id=handle.id) from e

        log.info("snapshot.available", snapshot_id=handle.id)
        return handle

    def _refresh(self, handle: SnapshotHandle) -> Optional[SnapshotHandle]:
        try:
            raw_state = self.cloud.get_snapshot_state(handle.id)
        except TransientProviderError as e:
            log.warning("snapshot.state_query_failed", snapshot_id=handle.id, error=str(e))
            return None

        handle.state = SnapshotState.from_provider(raw_state)
        if handle.state is SnapshotState.FAILED:
            raise ProviderError(
                f"Snapshot {handle.id} entered state '{raw_state}'",
                snapshot_id=handle.id,
            )
        if handle.state is SnapshotState.AVAILABLE:
            return handle

        log.info("snapshot.pending", snapshot_id=handle.id, state=raw_state)
        return None
