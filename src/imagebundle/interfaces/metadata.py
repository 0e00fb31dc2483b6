"""Interface for instance metadata sources."""

from abc import ABC, abstractmethod

from ..stages.models import InstanceMetadata


class MetadataSource(ABC):
    """Abstract source of facts about the running instance."""

    @abstractmethod
    def load(self) -> InstanceMetadata:
        """Load metadata. Raises MetadataUnavailable when it cannot."""
        pass
