#!/usr/bin/env python3
"""Data models for the bundle lifecycle."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_ROOT_DEVICE = "/dev/sda"
DEFAULT_VIRTUALIZATION_TYPE = "pv"
DEFAULT_ARCHITECTURE = "x86_64"

# Only four instance-store slots are mapped into new images.
EPHEMERAL_MAPPINGS: Tuple[Tuple[str, str], ...] = (
    ("/dev/sdb", "ephemeral0"),
    ("/dev/sdc", "ephemeral1"),
    ("/dev/sdd", "ephemeral2"),
    ("/dev/sde", "ephemeral3"),
)


class SnapshotState(Enum):
    """Observed state of a volume snapshot."""

    PENDING = "pending"
    AVAILABLE = "available"
    FAILED = "failed"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "SnapshotState":
        """Map a provider state string; anything unknown counts as pending."""
        normalized = (value or "").strip().lower()
        if normalized in ("available", "completed"):
            return cls.AVAILABLE
        if normalized in ("failed", "error"):
            return cls.FAILED
        return cls.PENDING


class ImageState(Enum):
    """Lifecycle of a registered image."""

    REGISTERING = "registering"
    AVAILABLE = "available"


class BundleState(Enum):
    """State of a bundle run."""

    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    REGISTERING = "registering"
    WAITING = "waiting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class InstanceMetadata:
    """Read-only facts about the running instance."""

    instance_id: Optional[str] = None
    availability_zone: Optional[str] = None
    virtualization_type: Optional[str] = None
    kernel_id: Optional[str] = None
    root_device: str = DEFAULT_ROOT_DEVICE
    attachment_device: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "availability_zone": self.availability_zone,
            "virtualization_type": self.virtualization_type,
            "kernel_id": self.kernel_id,
            "root_device": self.root_device,
            "attachment_device": self.attachment_device,
        }


@dataclass(frozen=True)
class BundleRequest:
    """Caller-supplied naming for the new snapshot and image."""

    name: Optional[str] = None
    description: Optional[str] = None


@dataclass
class SnapshotHandle:
    """A snapshot created during one bundle run."""

    id: str
    state: SnapshotState = SnapshotState.PENDING
    volume_id: Optional[str] = None
    device: Optional[str] = None


@dataclass
class ImageHandle:
    """An image registered during one bundle run."""

    id: str
    name: Optional[str] = None
    state: ImageState = ImageState.REGISTERING


@dataclass(frozen=True)
class BundleResult:
    """Outcome of a successful bundle run."""

    image_id: str
    snapshot_id: Optional[str] = None
    dry_run: bool = False


@dataclass(frozen=True)
class RegistrationParams:
    """Everything needed to register an image from a snapshot."""

    region: str
    snapshot_id: str
    root_device_name: str
    virtualization_type: str = DEFAULT_VIRTUALIZATION_TYPE
    architecture: str = DEFAULT_ARCHITECTURE
    kernel_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    block_device_mappings: Tuple[Tuple[str, str], ...] = EPHEMERAL_MAPPINGS

    def to_api_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the EC2 RegisterImage call."""
        mappings: List[Dict[str, Any]] = [
            {
                "DeviceName": self.root_device_name,
                "Ebs": {"SnapshotId": self.snapshot_id},
            }
        ]
        mappings.extend(
            {"DeviceName": device, "VirtualName": virtual}
            for device, virtual in self.block_device_mappings
        )
        kwargs: Dict[str, Any] = {
            "Architecture": self.architecture,
            "VirtualizationType": self.virtualization_type,
            "RootDeviceName": self.root_device_name,
            "BlockDeviceMappings": mappings,
        }
        if self.kernel_id:
            kwargs["KernelId"] = self.kernel_id
        if self.name:
            kwargs["Name"] = self.name
        if self.description:
            kwargs["Description"] = self.description
        return kwargs

    def to_cli_args(self, executable: str = "aws") -> List[str]:
        """Argument vector for `aws ec2 register-image`."""
        mappings = [f"DeviceName={self.root_device_name},Ebs={{SnapshotId={self.snapshot_id}}}"]
        mappings.extend(
            f"DeviceName={device},VirtualName={virtual}"
            for device, virtual in self.block_device_mappings
        )
        args = [
            executable,
            "ec2",
            "register-image",
            "--region",
            self.region,
            "--virtualization-type",
            self.virtualization_type,
            "--architecture",
            self.architecture,
            "--root-device-name",
            self.root_device_name,
            "--block-device-mappings",
            *mappings,
        ]
        if self.kernel_id:
            args += ["--kernel-id", self.kernel_id]
        if self.name:
            args += ["--name", self.name]
        if self.description:
            args += ["--description", self.description]
        args += ["--query", "ImageId", "--output", "text"]
        return args


@dataclass
class VolumeAttachment:
    """A volume attached to an instance."""

    volume_id: str
    device: str
    name: Optional[str] = None


@dataclass
class ImageSummary:
    """An image as reported by the provider's image listing."""

    id: str
    name: Optional[str] = None
    state: Optional[str] = None
