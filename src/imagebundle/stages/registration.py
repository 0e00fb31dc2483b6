#!/usr/bin/env python3
"""Register an image from a snapshot and wait until it is listed."""

import re
from typing import Optional

import structlog

from ..errors import (
    DeadlineExceeded,
    IllegalState,
    ImageDiscoveryTimeout,
    MissingRegionInfo,
    RegistrationFailed,
    TransientProviderError,
)
from ..interfaces.cloud import CloudClient
from ..poller import PollWaiter
from .models import (
    DEFAULT_ARCHITECTURE,
    DEFAULT_VIRTUALIZATION_TYPE,
    EPHEMERAL_MAPPINGS,
    BundleRequest,
    ImageHandle,
    ImageState,
    ImageSummary,
    InstanceMetadata,
    RegistrationParams,
    SnapshotHandle,
)

log = structlog.get_logger(__name__)

# Zone is the region plus a trailing letter suffix: us-east-1a -> us-east-1
_ZONE_PATTERN = re.compile(r"^(.*\d)[A-Za-z]*$")


def region_from_zone(availability_zone: Optional[str]) -> str:
    """Derive the region name from an availability zone."""
    if not availability_zone or not availability_zone.strip():
        raise MissingRegionInfo(
            "Availability zone is not known. Is EC2_PLACEMENT_AVAILABILITY_ZONE "
            "set, or was the metadata cache loaded?"
        )
    match = _ZONE_PATTERN.match(availability_zone.strip())
    if not match:
        raise MissingRegionInfo(f"Cannot derive a region from zone '{availability_zone}'")
    return match.group(1)


def build_registration_params(
    snapshot: Optional[SnapshotHandle],
    metadata: InstanceMetadata,
    request: BundleRequest,
    architecture: str = DEFAULT_ARCHITECTURE,
) -> RegistrationParams:
    """Registration parameters for ``snapshot``, derived only from local facts.

    Raises:
        IllegalState: the snapshot id or its root device is unknown
        MissingRegionInfo: the availability zone is missing or malformed
    """
    if snapshot is None or not snapshot.id:
        raise IllegalState("Snapshot id is missing. Create the snapshot before registering.")

    root_device_name = snapshot.device or metadata.attachment_device
    if not root_device_name:
        raise IllegalState(
            f"Root device of snapshot {snapshot.id} is unknown",
            snapshot_id=snapshot.id,
        )

    region = region_from_zone(metadata.availability_zone)
    log.info("registration.region_detected", region=region)

    return RegistrationParams(
        region=region,
        snapshot_id=snapshot.id,
        root_device_name=root_device_name,
        virtualization_type=metadata.virtualization_type or DEFAULT_VIRTUALIZATION_TYPE,
        architecture=architecture,
        # HVM images boot without a kernel image.
        kernel_id=metadata.kernel_id or None,
        name=request.name or None,
        description=request.description or None,
        block_device_mappings=EPHEMERAL_MAPPINGS,
    )


class RegistrationStage:
    """Turn an available snapshot into a registered, discoverable image."""

    def __init__(
        self,
        cloud: CloudClient,
        waiter: Optional[PollWaiter] = None,
        architecture: str = DEFAULT_ARCHITECTURE,
    ):
        self.cloud = cloud
        self.waiter = waiter or PollWaiter()
        self.architecture = architecture

    def register_image(
        self,
        snapshot: SnapshotHandle,
        metadata: InstanceMetadata,
        request: BundleRequest,
    ) -> ImageHandle:
        """Register the snapshot as an image and block until it is listed."""
        handle = self.submit(snapshot, metadata, request)
        return self.wait_for_image(handle)

    def build_params(
        self,
        snapshot: SnapshotHandle,
        metadata: InstanceMetadata,
        request: BundleRequest,
    ) -> RegistrationParams:
        """Build registration parameters; does not touch the provider."""
        return build_registration_params(snapshot, metadata, request, self.architecture)

    def submit(
        self,
        snapshot: SnapshotHandle,
        metadata: InstanceMetadata,
        request: BundleRequest,
    ) -> ImageHandle:
        """Issue the registration call. The image is not usable yet."""
        params = self.build_params(snapshot, metadata, request)

        log.info("registration.submitting", snapshot_id=snapshot.id, region=params.region)
        log.debug("registration.params", **params.to_api_kwargs())
        try:
            image_id = self.cloud.create_image(params)
        except Exception as e:
            raise RegistrationFailed(
                f"Unable to register image from {snapshot.id}: {e}",
                snapshot_id=snapshot.id,
            ) from e

        if not image_id:
            raise RegistrationFailed(
                f"Registration of {snapshot.id} returned no image id",
                snapshot_id=snapshot.id,
            )

        log.info("registration.submitted", image_id=image_id)
        return ImageHandle(id=image_id, name=params.name, state=ImageState.REGISTERING)

    def wait_for_image(self, handle: ImageHandle) -> ImageHandle:
        """Poll the image listing until the new image shows up."""
        if not handle.id:
            raise IllegalState("Image id is missing. Submit the registration first.")

        try:
            summary = self.waiter.wait_until(lambda: self._lookup(handle.id), f"image {handle.id}")
        except DeadlineExceeded as e:
            raise ImageDiscoveryTimeout(str(e), image_id=handle.id) from e

        handle.state = ImageState.AVAILABLE
        if summary.name:
            handle.name = summary.name
        log.info("registration.image_found", image_id=handle.id, image_name=handle.name)
        return handle

    def _lookup(self, image_id: str) -> Optional[ImageSummary]:
        try:
            return self.cloud.find_image_by_resource_id(image_id)
        except TransientProviderError as e:
            log.warning("registration.lookup_failed", image_id=image_id, error=str(e))
            return None
