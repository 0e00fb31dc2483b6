"""Interface for the cloud provider resource API."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..stages.models import ImageSummary, RegistrationParams, VolumeAttachment


class CloudClient(ABC):
    """Abstract interface over volumes, snapshots and images.

    Implementations raise ``ProviderError`` for failed calls and
    ``TransientProviderError`` for failures worth retrying while polling.
    """

    @abstractmethod
    def list_volume_attachments(self, instance_id: str) -> List[VolumeAttachment]:
        """List volumes attached to an instance."""
        pass

    @abstractmethod
    def create_snapshot(
        self,
        volume_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        """Start a snapshot of a volume. Returns the snapshot id."""
        pass

    @abstractmethod
    def get_snapshot_state(self, snapshot_id: str) -> str:
        """Current provider state string of a snapshot."""
        pass

    @abstractmethod
    def create_image(self, params: RegistrationParams) -> str:
        """Register an image. Returns the provider image id."""
        pass

    @abstractmethod
    def find_image_by_resource_id(self, image_id: str) -> Optional[ImageSummary]:
        """Look up an image by id; None while it is not listed yet."""
        pass
