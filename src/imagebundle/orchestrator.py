"""
Bundle orchestration for imagebundle.
Runs the snapshot and registration stages in order and owns the run state.
"""
import threading
from typing import List, Optional

import structlog

from .errors import Cancelled, IllegalState, ImageBundleError
from .interfaces.cloud import CloudClient
from .interfaces.metadata import MetadataSource
from .logging import log_operation
from .poller import DEFAULT_DEADLINE_SECONDS, DEFAULT_INTERVAL_SECONDS, PollWaiter
from .stages.models import (
    DEFAULT_ARCHITECTURE,
    DEFAULT_ROOT_DEVICE,
    BundleRequest,
    BundleResult,
    BundleState,
    ImageHandle,
    InstanceMetadata,
    SnapshotHandle,
    SnapshotState,
)
from .stages.registration import RegistrationStage
from .stages.snapshot import SnapshotStage

log = structlog.get_logger(__name__)

DRY_RUN_SNAPSHOT_ID = "snap-dryrun"
DRY_RUN_IMAGE_ID = "ami-dryrun"


class BundleOrchestrator:
    """
    Snapshot an instance and register the snapshot as an image.

    Usage:
        orch = BundleOrchestrator(cloud, metadata_source)
        result = orch.run(request=BundleRequest(name="web-2024-06"))
        print(result.image_id)

    State: IDLE -> SNAPSHOTTING -> REGISTERING -> WAITING -> DONE. Any failure
    moves to FAILED and skips the remaining stages. Created resources are
    left in place; the raised error names them.
    """

    def __init__(
        self,
        cloud: CloudClient,
        metadata_source: MetadataSource,
        dry_run: bool = False,
        root_device: str = DEFAULT_ROOT_DEVICE,
        poll_interval: float = DEFAULT_INTERVAL_SECONDS,
        poll_timeout: float = DEFAULT_DEADLINE_SECONDS,
        waiter: Optional[PollWaiter] = None,
        architecture: str = DEFAULT_ARCHITECTURE,
    ):
        self.cloud = cloud
        self.metadata_source = metadata_source
        self.dry_run = dry_run
        self.waiter = waiter or PollWaiter(deadline=poll_timeout, interval=poll_interval)
        self.snapshot_stage = SnapshotStage(cloud, self.waiter, root_device=root_device)
        self.registration_stage = RegistrationStage(cloud, self.waiter, architecture=architecture)

        self.state = BundleState.IDLE
        self.history: List[BundleState] = [BundleState.IDLE]
        self.snapshot: Optional[SnapshotHandle] = None
        self.image: Optional[ImageHandle] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def cancel_event(self) -> threading.Event:
        return self.waiter.cancel_event

    def cancel(self) -> None:
        """Abort the run in progress, or the next one if it has not started yet.

        The current wait stops promptly; the request is dropped once that run ends.
        """
        log.info("bundle.cancel_requested", state=self.state.value)
        self.cancel_event.set()

    def run(
        self,
        instance_id: Optional[str] = None,
        request: Optional[BundleRequest] = None,
    ) -> BundleResult:
        """Run a full bundle.

        Args:
            instance_id: Instance to bundle (default: the one in the metadata)
            request: Optional name/description for the snapshot and image

        Returns:
            BundleResult with the new image id

        Raises:
            ImageBundleError: a stage failed; ``snapshot_id``/``image_id`` on the
                error name whatever was already created
        """
        with self._lock:
            if self._running:
                raise IllegalState(f"A bundle run is already in progress ({self.state.value})")
            self._running = True
            self._reset()
            self._transition(BundleState.IDLE)

        request = request or BundleRequest()
        structlog.contextvars.bind_contextvars(dry_run=self.dry_run)
        try:
            metadata = self.metadata_source.load()
            instance_id = instance_id or metadata.instance_id
            if not instance_id:
                raise IllegalState("No instance id given and none found in metadata")

            if self.dry_run:
                result = self._simulate(instance_id, metadata, request)
            else:
                result = self._execute(instance_id, metadata, request)
        except ImageBundleError as e:
            self._fail(e)
            raise
        except KeyboardInterrupt:
            error = Cancelled("Interrupted")
            self._fail(error)
            raise error from None
        except Exception as e:
            self._fail(e)
            raise
        else:
            self._transition(BundleState.DONE)
        finally:
            structlog.contextvars.unbind_contextvars("dry_run")
            # Cancel requests are scoped to a single run.
            self.cancel_event.clear()
            self._running = False

        log.info("bundle.done", image_id=result.image_id, snapshot_id=result.snapshot_id)
        return result

    def _execute(
        self,
        instance_id: str,
        metadata: InstanceMetadata,
        request: BundleRequest,
    ) -> BundleResult:
        self._check_cancelled()
        self._transition(BundleState.SNAPSHOTTING)
        with log_operation(log, "snapshot", instance_id=instance_id):
            attachment = self.snapshot_stage.find_root_attachment(instance_id)
            self.snapshot = self.snapshot_stage.start_snapshot(attachment, request)
            self.snapshot_stage.wait_for_snapshot(self.snapshot)

        self._check_cancelled()
        self._transition(BundleState.REGISTERING)
        with log_operation(log, "register", snapshot_id=self.snapshot.id):
            self.image = self.registration_stage.submit(self.snapshot, metadata, request)

        self._transition(BundleState.WAITING)
        with log_operation(log, "discover", image_id=self.image.id):
            self.registration_stage.wait_for_image(self.image)

        return BundleResult(image_id=self.image.id, snapshot_id=self.snapshot.id)

    def _simulate(
        self,
        instance_id: str,
        metadata: InstanceMetadata,
        request: BundleRequest,
    ) -> BundleResult:
        """Walk the states without contacting the provider."""
        self._check_cancelled()
        self._transition(BundleState.SNAPSHOTTING)
        log.info(
            "bundle.dry_run.snapshot_skipped",
            instance_id=instance_id,
            root_device=self.snapshot_stage.root_device,
        )
        self.snapshot = SnapshotHandle(
            id=DRY_RUN_SNAPSHOT_ID,
            state=SnapshotState.AVAILABLE,
            device=metadata.attachment_device or self.snapshot_stage.root_device,
        )

        self._transition(BundleState.REGISTERING)
        params = self.registration_stage.build_params(self.snapshot, metadata, request)
        log.info("bundle.dry_run.register_skipped", command=" ".join(params.to_cli_args()))
        self.image = ImageHandle(id=DRY_RUN_IMAGE_ID, name=params.name)

        self._transition(BundleState.WAITING)
        log.info("bundle.dry_run.wait_skipped", image_id=self.image.id)

        return BundleResult(image_id=self.image.id, snapshot_id=self.snapshot.id, dry_run=True)

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise Cancelled(f"Cancelled before {self.state.value} finished")

    def _transition(self, state: BundleState) -> None:
        log.debug("bundle.transition", from_state=self.state.value, to_state=state.value)
        self.state = state
        self.history.append(state)

    def _reset(self) -> None:
        self.snapshot = None
        self.image = None
        self.history = []

    def _fail(self, error: Exception) -> None:
        if isinstance(error, ImageBundleError):
            if error.snapshot_id is None and self.snapshot is not None:
                error.snapshot_id = self.snapshot.id
            if error.image_id is None and self.image is not None:
                error.image_id = self.image.id
        failed_in = self.state
        self._transition(BundleState.FAILED)
        log.error(
            "bundle.failed",
            stage=failed_in.value,
            error=str(error),
            error_type=type(error).__name__,
            snapshot_id=self.snapshot.id if self.snapshot else None,
            image_id=self.image.id if self.image else None,
        )
