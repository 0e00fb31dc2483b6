"""Tests for the boto3 EC2 cloud client."""
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from imagebundle.backends.ec2 import Ec2CloudClient
from imagebundle.errors import ProviderError, TransientProviderError
from imagebundle.stages.models import RegistrationParams


def client_error(code, operation="DescribeSnapshots"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def ec2():
    return MagicMock()


@pytest.fixture
def client(ec2):
    return Ec2CloudClient(region="us-east-1", client=ec2)


class TestEc2CloudClient:
    """Test EC2 response mapping."""

    def test_list_volume_attachments(self, client, ec2):
        ec2.describe_volumes.return_value = {
            "Volumes": [
                {
                    "VolumeId": "vol-root",
                    "Tags": [{"Key": "Name", "Value": "root"}],
                    "Attachments": [{"InstanceId": "i-1", "Device": "/dev/sda1"}],
                },
                {
                    "VolumeId": "vol-data",
                    "Attachments": [
                        {"InstanceId": "i-other", "Device": "/dev/sdg"},
                        {"InstanceId": "i-1", "Device": "/dev/sdf"},
                    ],
                },
            ]
        }

        attachments = client.list_volume_attachments("i-1")

        assert [(a.volume_id, a.device, a.name) for a in attachments] == [
            ("vol-root", "/dev/sda1", "root"),
            ("vol-data", "/dev/sdf", None),
        ]
        ec2.describe_volumes.assert_called_once_with(
            Filters=[{"Name": "attachment.instance-id", "Values": ["i-1"]}]
        )

    def test_create_snapshot_with_name(self, client, ec2):
        ec2.create_snapshot.return_value = {"SnapshotId": "snap-1"}

        assert client.create_snapshot("vol-1", name="web", description="nightly") == "snap-1"
        ec2.create_snapshot.assert_called_once_with(
            VolumeId="vol-1",
            Description="nightly",
            TagSpecifications=[
                {"ResourceType": "snapshot", "Tags": [{"Key": "Name", "Value": "web"}]}
            ],
        )

    def test_create_snapshot_minimal(self, client, ec2):
        ec2.create_snapshot.return_value = {"SnapshotId": "snap-1"}

        client.create_snapshot("vol-1")

        ec2.create_snapshot.assert_called_once_with(VolumeId="vol-1")

    def test_get_snapshot_state(self, client, ec2):
        ec2.describe_snapshots.return_value = {"Snapshots": [{"State": "completed"}]}

        assert client.get_snapshot_state("snap-1") == "completed"

    def test_unlisted_snapshot_is_transient(self, client, ec2):
        ec2.describe_snapshots.return_value = {"Snapshots": []}

        with pytest.raises(TransientProviderError):
            client.get_snapshot_state("snap-1")

    def test_create_image(self, client, ec2):
        ec2.register_image.return_value = {"ImageId": "ami-1"}
        params = RegistrationParams(
            region="us-east-1", snapshot_id="snap-1", root_device_name="/dev/sda1", name="web"
        )

        assert client.create_image(params) == "ami-1"
        kwargs = ec2.register_image.call_args.kwargs
        assert kwargs["Name"] == "web"
        assert kwargs["RootDeviceName"] == "/dev/sda1"
        assert len(kwargs["BlockDeviceMappings"]) == 5

    def test_find_image(self, client, ec2):
        ec2.describe_images.return_value = {
            "Images": [
                {
                    "ImageId": "ami-1",
                    "Name": "web",
                    "State": "pending",
                }
            ]
        }

        summary = client.find_image_by_resource_id("ami-1")

        assert summary.id == "ami-1"
        assert summary.name == "web"
        assert summary.state == "pending"
        ec2.describe_images.assert_called_once_with(
            Filters=[{"Name": "image-id", "Values": ["ami-1"]}]
        )

    def test_find_image_not_listed(self, client, ec2):
        ec2.describe_images.return_value = {"Images": []}

        assert client.find_image_by_resource_id("ami-1") is None


class TestErrorMapping:
    """Test translation of botocore errors."""

    @pytest.mark.parametrize(
        "code", ["RequestLimitExceeded", "InvalidSnapshot.NotFound", "InternalError"]
    )
    def test_transient_codes(self, client, ec2, code):
        ec2.describe_snapshots.side_effect = client_error(code)

        with pytest.raises(TransientProviderError, match=code):
            client.get_snapshot_state("snap-1")

    @pytest.mark.parametrize("code", ["UnauthorizedOperation", "InvalidParameterValue"])
    def test_permanent_codes(self, client, ec2, code):
        ec2.register_image.side_effect = client_error(code, "RegisterImage")
        params = RegistrationParams(
            region="us-east-1", snapshot_id="snap-1", root_device_name="/dev/sda1"
        )

        with pytest.raises(ProviderError) as exc_info:
            client.create_image(params)

        assert not isinstance(exc_info.value, TransientProviderError)

    def test_connection_errors_are_transient(self, client, ec2):
        ec2.describe_images.side_effect = EndpointConnectionError(endpoint_url="https://ec2")

        with pytest.raises(TransientProviderError):
            client.find_image_by_resource_id("ami-1")

    def test_missing_credentials(self, client, ec2):
        ec2.describe_volumes.side_effect = NoCredentialsError()

        with pytest.raises(ProviderError) as exc_info:
            client.list_volume_attachments("i-1")

        assert not isinstance(exc_info.value, TransientProviderError)


def test_boto3_client_is_created_lazily():
    with patch("imagebundle.backends.ec2.boto3.client") as mock_client:
        client = Ec2CloudClient(region="eu-west-1")
        mock_client.assert_not_called()

        assert client.client is mock_client.return_value
        assert client.client is mock_client.return_value

    mock_client.assert_called_once_with("ec2", region_name="eu-west-1")
