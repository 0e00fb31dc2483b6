"""Bundle stages: snapshot the root volume, then register the image.

Stage classes live in .snapshot and .registration; only the data models are
re-exported here.
"""

from .models import (
    BundleRequest,
    BundleResult,
    BundleState,
    ImageHandle,
    ImageState,
    InstanceMetadata,
    RegistrationParams,
    SnapshotHandle,
    SnapshotState,
)

__all__ = [
    "BundleRequest",
    "BundleResult",
    "BundleState",
    "ImageHandle",
    "ImageState",
    "InstanceMetadata",
    "RegistrationParams",
    "SnapshotHandle",
    "SnapshotState",
]
