"""
Exception taxonomy for imagebundle.

Every failure that leaves a bundle stage is one of these types. Errors carry the
identifiers of whatever was already created so an operator can clean up or
resume by hand; nothing is rolled back automatically.
"""

from typing import Optional


class ImageBundleError(Exception):
    """Base class for all bundle failures."""

    def __init__(
        self,
        message: str,
        snapshot_id: Optional[str] = None,
        image_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.snapshot_id = snapshot_id
        self.image_id = image_id

    def cleanup_hint(self) -> Optional[str]:
        """Describe resources left behind by the failed run, if any."""
        parts = []
        if self.snapshot_id:
            parts.append(f"snapshot {self.snapshot_id}")
        if self.image_id:
            parts.append(f"image {self.image_id}")
        if not parts:
            return None
        return "Left in place: " + ", ".join(parts)


class MetadataUnavailable(ImageBundleError):
    """Instance metadata could not be loaded (not a managed instance?)."""


class MissingRegionInfo(ImageBundleError):
    """Availability zone is missing or cannot be turned into a region."""


class RootVolumeNotFound(ImageBundleError):
    """No volume is attached at the root device."""


class ProviderError(ImageBundleError):
    """A cloud API call failed. Not retried."""


class TransientProviderError(ProviderError):
    """A cloud API call failed in a way that is expected to clear up.

    Raised by adapters for throttling, transport hiccups and "not found yet"
    answers during polling; the stages treat it as "not ready".
    """


class RegistrationFailed(ImageBundleError):
    """The image registration call was rejected."""


class DeadlineExceeded(ImageBundleError):
    """Polling gave up after the configured deadline."""


class SnapshotTimeout(DeadlineExceeded):
    """Snapshot never reached the available state."""


class ImageDiscoveryTimeout(DeadlineExceeded):
    """Registered image never showed up in the image listing."""


class IllegalState(ImageBundleError):
    """Programming error: an operation was invoked out of order."""


class Cancelled(ImageBundleError):
    """The run was cancelled by the caller."""
