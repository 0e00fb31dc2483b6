"""
imagebundle - Create a bootable image from a running cloud instance.

Snapshots the instance's root volume, registers an image from the snapshot
and waits until the image is listed.
"""

__version__ = "0.1.0"

from imagebundle.orchestrator import BundleOrchestrator
from imagebundle.stages.models import BundleRequest, BundleResult

__all__ = ["BundleOrchestrator", "BundleRequest", "BundleResult", "__version__"]
