"""
Dependency injection container for managing application dependencies.
Centralizes provider creation and lifecycle management.

Process-wide singletons (inference backend, session store, registry,
history service) live here. Per-session state never does: each live session
gets its own CoachingOrchestrator from ``create_orchestrator``.
"""

from typing import Optional
import logging

from core_intelligence.providers import InferenceProviderBase
from core_intelligence.providers.factory import InferenceProviderFactory
from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope, StoreBackend


logger = logging.getLogger(__name__)


class DIContainer:
    """Singleton dependency injection container."""

    _instance: Optional['DIContainer'] = None
    _inference_backend: Optional[InferenceProviderBase] = None
    _session_store: Optional[object] = None
    _session_registry: Optional[object] = None
    _session_history_service: Optional[object] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Reset container (useful for testing)."""
        self._inference_backend = None
        self._session_store = None
        self._session_registry = None
        self._session_history_service = None

    def get_inference_backend(self) -> InferenceProviderBase:
        """Get or create the inference provider (lazy singleton).

        Raises:
            RuntimeError: If provider initialization fails.
        """
        if self._inference_backend is None:
            logger.info(
                "Initializing inference provider",
                extra={"scope": LogScope.CONFIG}
            )
            try:
                self._inference_backend = InferenceProviderFactory.create()
            except Exception as e:
                logger.error(
                    "Failed to initialize inference provider",
                    extra={"scope": LogScope.CONFIG, "error": str(e)}
                )
                raise RuntimeError(f"Inference provider initialization failed: {e}") from e

        return self._inference_backend

    def get_session_store(self):
        """Get or create the session store adapter selected by STORE_BACKEND."""
        if self._session_store is None:
            settings = get_settings()
            backend = settings.store_backend
            if backend == StoreBackend.DYNAMODB.value:
                from adapters.dynamo_session_store import DynamoSessionStoreAdapter

                self._session_store = DynamoSessionStoreAdapter(
                    table_name=settings.dynamodb_table_name,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoSessionStoreAdapter")
            elif backend == StoreBackend.JSON.value:
                from adapters.json_session_store import JsonSessionStoreAdapter

                self._session_store = JsonSessionStoreAdapter(path=settings.json_store_path)
                logger.info("Initialized JsonSessionStoreAdapter")
            else:
                from adapters.in_memory_session_store import InMemorySessionStoreAdapter

                self._session_store = InMemorySessionStoreAdapter()
                logger.info("Initialized InMemorySessionStoreAdapter (local dev)")
        return self._session_store

    def get_session_registry(self):
        """Get or create the live session registry (lazy singleton)."""
        if self._session_registry is None:
            from services.session_registry import SessionRegistry

            self._session_registry = SessionRegistry()
            logger.info("Initialized SessionRegistry")
        return self._session_registry

    def get_session_history_service(self):
        """Get or create SessionHistoryService (lazy singleton)."""
        if self._session_history_service is None:
            from services.session_history_service import SessionHistoryService

            self._session_history_service = SessionHistoryService(
                store=self.get_session_store(),
            )
            logger.info("Initialized SessionHistoryService")
        return self._session_history_service

    def create_orchestrator(
        self,
        *,
        auth,
        audio_device,
        display_device=None,
        session_type=None,
        title: Optional[str] = None,
        clock=None,
    ):
        """Build a new CoachingOrchestrator wired to the shared backend and store."""
        from domain.models import SessionType
        from services.coaching_orchestrator import CoachingOrchestrator, OrchestratorConfig

        return CoachingOrchestrator(
            backend=self.get_inference_backend(),
            store=self.get_session_store(),
            auth=auth,
            audio_device=audio_device,
            display_device=display_device,
            session_type=session_type or SessionType.MEETING,
            title=title,
            config=OrchestratorConfig.from_settings(get_settings()),
            clock=clock,
        )


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container
