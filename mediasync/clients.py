"""
Client registry and factory.

The registry answers "which external client is this id, and how do I talk
to it"; the factory turns that configuration into a MediaClient. Both are
injected into the orchestrator.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Callable, Iterable
from pydantic import BaseModel, Field, validator
import importlib
import json
import logging

from mediasync.providers.base import MediaClient
from core.exceptions import ClientConfigurationError

logger = logging.getLogger(__name__)


class ClientConfig(BaseModel):
    """Configuration of one external media client"""
    client_id: int
    client_type: str = Field(..., min_length=1)
    user_id: int
    name: Optional[str] = None
    enabled: bool = True
    connection: Dict[str, Any] = Field(default_factory=dict)
    # Dotted path "package.module:ClassName" to a MediaClient implementation
    adapter: Optional[str] = None

    @validator("client_type")
    def clean_client_type(cls, v):
        return v.strip().lower()


# ============================================================================
# REGISTRY
# ============================================================================

class ClientRegistry(ABC):
    """Looks up client configurations"""

    @abstractmethod
    async def resolve(self, client_id: int) -> ClientConfig:
        """
        Return the configuration for a client.

        Raises:
            ClientConfigurationError: If the client is unknown
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: int) -> List[ClientConfig]:
        pass


class InMemoryClientRegistry(ClientRegistry):
    """Registry backed by a dict of configurations"""

    def __init__(self, configs: Optional[Iterable[ClientConfig]] = None):
        self._configs: Dict[int, ClientConfig] = {}
        for config in configs or []:
            self.add(config)

    def add(self, config: ClientConfig):
        self._configs[config.client_id] = config

    async def resolve(self, client_id: int) -> ClientConfig:
        config = self._configs.get(client_id)
        if config is None:
            raise ClientConfigurationError(
                f"Client {client_id} is not configured",
                context={"client_id": client_id}
            )
        return config

    async def list_for_user(self, user_id: int) -> List[ClientConfig]:
        return [c for c in self._configs.values() if c.user_id == user_id]


class FileClientRegistry(InMemoryClientRegistry):
    """Registry loaded from a JSON file holding a list of client configurations"""

    @classmethod
    def from_file(cls, path: str) -> "FileClientRegistry":
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ClientConfigurationError(
                f"Failed to read client configuration from {path}",
                context={"path": path},
                original_exception=e
            )

        if isinstance(raw, dict):
            raw = raw.get("clients", [])

        try:
            configs = [ClientConfig(**entry) for entry in raw]
        except (TypeError, ValueError) as e:
            raise ClientConfigurationError(
                f"Invalid client configuration in {path}",
                context={"path": path},
                original_exception=e
            )

        logger.info(f"Loaded {len(configs)} client configurations from {path}")
        return cls(configs)


# ============================================================================
# FACTORY
# ============================================================================

ClientConstructor = Callable[[ClientConfig], MediaClient]


class ClientFactory:
    """
    Builds MediaClient instances from configuration.

    Constructors are looked up by client_type, unless the configuration
    names an adapter class directly.
    """

    def __init__(self):
        self._constructors: Dict[str, ClientConstructor] = {}

    def register(self, client_type: str, constructor: ClientConstructor):
        self._constructors[client_type.strip().lower()] = constructor

    def create(self, config: ClientConfig) -> MediaClient:
        """
        Raises:
            ClientConfigurationError: If no constructor is known or building fails
        """
        constructor = self._constructors.get(config.client_type)
        if config.adapter:
            constructor = self._load_adapter(config)
        if constructor is None:
            raise ClientConfigurationError(
                f"No client implementation registered for type '{config.client_type}'",
                context={"client_id": config.client_id, "client_type": config.client_type}
            )

        try:
            return constructor(config)
        except ClientConfigurationError:
            raise
        except Exception as e:
            raise ClientConfigurationError(
                f"Failed to build client {config.client_id}",
                context={"client_id": config.client_id, "client_type": config.client_type},
                original_exception=e
            )

    @staticmethod
    def _load_adapter(config: ClientConfig) -> ClientConstructor:
        module_path, _, attr = config.adapter.replace(":", ".").rpartition(".")
        try:
            module = importlib.import_module(module_path)
            return getattr(module, attr)
        except (ImportError, AttributeError, ValueError) as e:
            raise ClientConfigurationError(
                f"Cannot load client adapter '{config.adapter}'",
                context={"client_id": config.client_id, "adapter": config.adapter},
                original_exception=e
            )
