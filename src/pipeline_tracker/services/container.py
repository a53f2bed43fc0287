"""
Process-wide registry for the tracker's shared services.

Every service is a lazily built singleton: the database connection, the
repository and the pipeline service are each created on first use and then
shared by the web routes and the CLIs. Settings resolved at startup travel
with the container so the factories can read them.
"""
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ServiceNotFoundError(Exception):
    """No factory is registered under the requested name."""
    pass


class ServiceCreationError(Exception):
    """A registered factory failed to build its service."""
    pass


class ServiceContainer:
    """Named lazy singletons plus the configuration their factories read."""

    def __init__(self):
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._instances: Dict[str, Any] = {}
        self._config: Dict[str, Any] = {}

    def register_singleton(self, name: str, factory: Callable[[], Any]) -> None:
        """Register (or replace) the factory for a service; any built instance is dropped."""
        self._factories[name] = factory
        self._instances.pop(name, None)
        logger.debug(f"Registered service: {name}")

    def set_config(self, config: Dict[str, Any]) -> None:
        self._config = dict(config)

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get(self, name: str) -> Any:
        """
        Return the service, building it on first request.

        Raises:
            ServiceNotFoundError: Nothing registered under name
            ServiceCreationError: The factory raised
        """
        if name in self._instances:
            return self._instances[name]

        factory = self._factories.get(name)
        if factory is None:
            raise ServiceNotFoundError(f"Service '{name}' not found in container")

        try:
            instance = factory()
        except Exception as e:
            logger.error(f"Failed to create service '{name}': {e}")
            raise ServiceCreationError(f"Failed to create service '{name}': {e}") from e

        self._instances[name] = instance
        logger.debug(f"Created service: {name}")
        return instance

    def list_services(self) -> Dict[str, str]:
        """Registered names with whether each has been built yet."""
        return {
            name: "ready" if name in self._instances else "registered"
            for name in self._factories
        }


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """Forget the global container and every service it built."""
    global _container
    _container = None
