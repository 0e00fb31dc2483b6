"""IoC container wiring imagebundle's collaborators."""

import inspect
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type, TypeVar

T = TypeVar("T")


@dataclass
class ServiceRegistration:
    """How to build one service."""

    factory: Callable[..., Any]
    singleton: bool = True
    instance: Optional[Any] = None


class DependencyContainer:
    """
    Maps interfaces to implementations and builds them on demand.

    Usage:
        container = DependencyContainer()
        container.register(ProcessRunner, SubprocessRunner)
        container.register(CloudClient, factory=lambda: Ec2CloudClient("us-east-1"))
        orchestrator = container.resolve(BundleOrchestrator)

    Constructor parameters annotated with a registered type are filled in
    automatically; parameters with defaults are left alone otherwise.
    """

    def __init__(self):
        self._registrations: Dict[Type, ServiceRegistration] = {}
        self._lock = threading.RLock()

    def register(
        self,
        interface: Type[T],
        implementation: Optional[Type[T]] = None,
        factory: Optional[Callable[..., T]] = None,
        singleton: bool = True,
        instance: Optional[T] = None,
    ) -> "DependencyContainer":
        """Register a service; returns the container for chaining."""
        if instance is not None:
            registration = ServiceRegistration(factory=lambda: instance, instance=instance)
        elif factory is not None:
            registration = ServiceRegistration(factory=factory, singleton=singleton)
        elif implementation is not None:
            registration = ServiceRegistration(factory=implementation, singleton=singleton)
        else:
            raise ValueError("Must provide implementation, factory, or instance")

        with self._lock:
            self._registrations[interface] = registration
        return self

    def resolve(self, interface: Type[T]) -> T:
        """Return an instance for ``interface``."""
        with self._lock:
            registration = self._registrations.get(interface)
            if registration is None:
                if inspect.isclass(interface) and not inspect.isabstract(interface):
                    return self._build(interface)
                raise KeyError(f"No registration for {interface}")

            if registration.singleton and registration.instance is not None:
                return registration.instance

            instance = self._build(registration.factory)
            if registration.singleton:
                registration.instance = instance
            return instance

    def has(self, interface: Type) -> bool:
        """Check if service is registered."""
        return interface in self._registrations

    def reset(self) -> None:
        """Drop cached singletons; pre-registered instances survive."""
        with self._lock:
            for registration in self._registrations.values():
                registration.instance = None

    def _build(self, factory: Callable[..., Any]) -> Any:
        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):
            return factory()

        kwargs = {}
        for name, param in signature.parameters.items():
            if param.annotation is inspect.Parameter.empty:
                continue
            if not self.has(param.annotation) and param.default is not inspect.Parameter.empty:
                continue
            kwargs[name] = self.resolve(param.annotation)
        return factory(**kwargs)


_container: Optional[DependencyContainer] = None


def get_container(config: Optional[Any] = None) -> DependencyContainer:
    """Get the global container, creating the default one for ``config``."""
    global _container
    if _container is None:
        _container = create_default_container(config)
    return _container


def set_container(container: Optional[DependencyContainer]) -> None:
    """Set the global container (useful for testing)."""
    global _container
    _container = container


def create_default_container(config: Optional[Any] = None) -> DependencyContainer:
    """Container with the production adapters for ``config``."""
    from .backends.aws_cli import AwsCliCloudClient
    from .backends.ec2 import Ec2CloudClient
    from .backends.metadata_sources import EnvironmentMetadataSource, MetadataCacheFile
    from .backends.subprocess_runner import SubprocessRunner
    from .interfaces.cloud import CloudClient
    from .interfaces.metadata import MetadataSource
    from .interfaces.process import ProcessRunner
    from .models import BundleConfig
    from .orchestrator import BundleOrchestrator
    from .stages.registration import region_from_zone

    config = config or BundleConfig()
    container = DependencyContainer()
    container.register(BundleConfig, instance=config)
    container.register(ProcessRunner, SubprocessRunner)

    def make_metadata_source() -> MetadataSource:
        if config.use_environment_metadata:
            return EnvironmentMetadataSource(root_device=config.root_device)
        return MetadataCacheFile(path=config.metadata_file, root_device=config.root_device)

    def make_cloud_client() -> CloudClient:
        region = config.region
        if region is None:
            metadata = container.resolve(MetadataSource).load()
            region = region_from_zone(metadata.availability_zone)
        if config.registration_backend == "cli":
            return AwsCliCloudClient(
                region=region,
                runner=container.resolve(ProcessRunner),
                executable=config.aws_cli,
            )
        return Ec2CloudClient(region=region)

    def make_orchestrator() -> BundleOrchestrator:
        return BundleOrchestrator(
            cloud=container.resolve(CloudClient),
            metadata_source=container.resolve(MetadataSource),
            dry_run=config.dry_run,
            root_device=config.root_device,
            poll_interval=config.poll_interval_seconds,
            poll_timeout=config.poll_timeout_seconds,
            architecture=config.architecture,
        )

    container.register(MetadataSource, factory=make_metadata_source)
    container.register(CloudClient, factory=make_cloud_client)
    container.register(BundleOrchestrator, factory=make_orchestrator, singleton=False)
    return container
