from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from .errors import DocumentStoreError, ServiceUnavailableError
from .routing import SERVICE_LABELS
from .vault import VaultDocumentStore

logger = logging.getLogger(__name__)


class DomainService(Protocol):
    def summarize(self, user_id: Optional[str]) -> str: ...


class DriveListing:
    """Top-level folders and files of the document store."""

    def __init__(self, store: VaultDocumentStore):
        self.store = store

    def summarize(self, user_id: Optional[str]) -> str:
        try:
            folders, files = self.store.list_top_level()
        except DocumentStoreError as e:
            raise ServiceUnavailableError(e.message) from e
        result = f"{self.store.root.name} - My Drive:\n\nFolders:\n"
        result += "\n".join(f"  📁 {f}" for f in folders) if folders else "  (none)"
        result += "\n\nFiles:\n"
        result += "\n".join(f"  📄 {f}" for f in files) if files else "  (none)"
        return result


class ServiceRegistry:
    """Service id -> summarizer. Ids without a backend report "not connected"."""

    def __init__(self, services: Optional[Dict[str, DomainService]] = None):
        self.services: Dict[str, DomainService] = dict(services or {})

    def register(self, service_id: str, service: DomainService) -> None:
        self.services[service_id] = service

    def summarize(self, service_id: str, user_id: Optional[str]) -> str:
        label = SERVICE_LABELS.get(service_id, service_id)
        service = self.services.get(service_id)
        if service is None:
            raise ServiceUnavailableError(f"{label} is not connected.")
        try:
            return service.summarize(user_id)
        except ServiceUnavailableError:
            raise
        except Exception as e:
            logger.warning("[service:%s] failed: %s", service_id, e)
            raise ServiceUnavailableError(f"{label} request failed: {e}") from e
