"""boto3 EC2 cloud client implementation."""

from typing import Any, Dict, List, Optional

import boto3
import structlog
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..errors import ProviderError, TransientProviderError
from ..interfaces.cloud import CloudClient
from ..stages.models import ImageSummary, RegistrationParams, VolumeAttachment

log = structlog.get_logger(__name__)

# Error codes that clear up on their own: throttling, eventual consistency
# of freshly created resources, and service hiccups.
TRANSIENT_ERROR_CODES = frozenset(
    {
        "RequestLimitExceeded",
        "Throttling",
        "ThrottlingException",
        "InternalError",
        "ServiceUnavailable",
        "Unavailable",
        "InvalidSnapshot.NotFound",
        "InvalidAMIID.NotFound",
        "InvalidAMIID.Unavailable",
    }
)

_TRANSPORT_ERRORS = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)


def _name_tag(tags: Optional[List[Dict[str, str]]]) -> Optional[str]:
    for tag in tags or []:
        if tag.get("Key") == "Name":
            return tag.get("Value")
    return None


class Ec2CloudClient(CloudClient):
    """Cloud client backed by the EC2 API."""

    name = "ec2"

    def __init__(self, region: Optional[str] = None, client: Optional[Any] = None):
        self.region = region
        self._client = client

    @property
    def client(self) -> Any:
        """Get or create the boto3 EC2 client."""
        if self._client is None:
            self._client = boto3.client("ec2", region_name=self.region)
        return self._client

    def list_volume_attachments(self, instance_id: str) -> List[VolumeAttachment]:
        response = self._call(
            "describe_volumes",
            Filters=[{"Name": "attachment.instance-id", "Values": [instance_id]}],
        )
        attachments = []
        for volume in response.get("Volumes", []):
            volume_name = _name_tag(volume.get("Tags"))
            for attachment in volume.get("Attachments", []):
                if attachment.get("InstanceId") != instance_id:
                    continue
                attachments.append(
                    VolumeAttachment(
                        volume_id=volume["VolumeId"],
                        device=attachment.get("Device", ""),
                        name=volume_name,
                    )
                )
        return attachments

    def create_snapshot(
        self,
        volume_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        kwargs: Dict[str, Any] = {"VolumeId": volume_id}
        if description:
            kwargs["Description"] = description
        if name:
            kwargs["TagSpecifications"] = [
                {"ResourceType": "snapshot", "Tags": [{"Key": "Name", "Value": name}]}
            ]
        response = self._call("create_snapshot", **kwargs)
        return response["SnapshotId"]

    def get_snapshot_state(self, snapshot_id: str) -> str:
        response = self._call("describe_snapshots", SnapshotIds=[snapshot_id])
        snapshots = response.get("Snapshots", [])
        if not snapshots:
            raise TransientProviderError(f"Snapshot {snapshot_id} is not listed yet")
        return snapshots[0]["State"]

    def create_image(self, params: RegistrationParams) -> str:
        response = self._call("register_image", **params.to_api_kwargs())
        return response["ImageId"]

    def find_image_by_resource_id(self, image_id: str) -> Optional[ImageSummary]:
        response = self._call(
            "describe_images",
            Filters=[{"Name": "image-id", "Values": [image_id]}],
        )
        images = response.get("Images", [])
        if not images:
            return None
        image = images[0]
        return ImageSummary(
            id=image["ImageId"],
            name=image.get("Name"),
            state=image.get("State"),
        )

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        """Invoke an EC2 operation, translating botocore errors."""
        log.debug("ec2.call", operation=operation, region=self.region)
        try:
            return getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in TRANSIENT_ERROR_CODES:
                raise TransientProviderError(f"{operation}: {code}") from e
            raise ProviderError(f"{operation} failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise TransientProviderError(f"{operation}: {e}") from e
        except BotoCoreError as e:
            raise ProviderError(f"{operation} failed: {e}") from e
