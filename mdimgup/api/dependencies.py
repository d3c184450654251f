"""
FastAPI dependency injection.

Dependencies provide instances of services, stores, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is centralized

Profiles, history and the upload cache are process-wide state, so the
services are built once per process into a ServiceContainer and shared
by every request. Tests override get_services with a container built
on in-memory stores.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.history import HistoryLedger, StorageClientFactory, UndoService
from ..core.ports import ImageResizer, MetadataStore, SecretStore
from ..core.profiles import ProfileStore
from ..core.uploader import UploadOrchestrator
from ..infrastructure.images import create_image_resizer
from ..infrastructure.persistence import create_metadata_store, create_secret_store
from ..infrastructure.storage.client import profile_client_factory

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared service container (built on first use)
_services: Optional["ServiceContainer"] = None


@dataclass
class ServiceContainer:
    """Everything a request may need, wired together once."""
    metadata: MetadataStore
    secrets: SecretStore
    profiles: ProfileStore
    ledger: HistoryLedger
    orchestrator: UploadOrchestrator
    undo: UndoService
    client_factory: StorageClientFactory
    resizer: ImageResizer


def build_services(
    settings: Settings,
    metadata: Optional[MetadataStore] = None,
    secrets: Optional[SecretStore] = None,
    client_factory: Optional[StorageClientFactory] = None,
    resizer: Optional[ImageResizer] = None,
) -> ServiceContainer:
    """
    Wire stores, profile management, history and the upload pipeline.

    Anything not passed in is built from settings: JSON/Fernet files
    under data_dir, boto3 clients (or the in-memory mock) and Pillow.
    """
    if metadata is None:
        metadata = create_metadata_store(settings.metadata_path)
    if secrets is None:
        secrets = create_secret_store(
            settings.secrets_path,
            key=settings.secrets_encryption_key or None,
            key_path=settings.secrets_key_path,
        )
    if client_factory is None:
        client_factory = profile_client_factory(mock_mode=settings.storage_mock_mode)
    if resizer is None:
        resizer = create_image_resizer()

    profiles = ProfileStore(metadata, secrets, legacy_config=settings.legacy_config())
    ledger = HistoryLedger(metadata, max_records=settings.history_max_records)
    orchestrator = UploadOrchestrator(
        client_factory,
        resizer,
        ledger,
        profiles,
        defaults=settings.upload_options(),
    )
    undo = UndoService(ledger, profiles, client_factory)

    logger.info(
        "Built services",
        extra={
            "data_dir": str(settings.data_dir),
            "storage_mock_mode": settings.storage_mock_mode,
            "profiles": len(profiles.list_profiles()),
            "history_records": len(ledger),
        },
    )

    return ServiceContainer(
        metadata=metadata,
        secrets=secrets,
        profiles=profiles,
        ledger=ledger,
        orchestrator=orchestrator,
        undo=undo,
        client_factory=client_factory,
        resizer=resizer,
    )


def reset_services() -> None:
    """Drop the shared container so the next request rebuilds it."""
    global _services
    _services = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_services(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ServiceContainer:
    """Provide the shared service container, building it on first use."""
    global _services

    if _services is None:
        _services = build_services(settings)
        logger.info("Created shared service container")

    return _services


def get_profile_store(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> ProfileStore:
    return services.profiles


def get_history_ledger(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> HistoryLedger:
    return services.ledger


def get_upload_orchestrator(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> UploadOrchestrator:
    return services.orchestrator


def get_undo_service(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> UndoService:
    return services.undo


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ProfileStoreDep = Annotated[ProfileStore, Depends(get_profile_store)]
HistoryLedgerDep = Annotated[HistoryLedger, Depends(get_history_ledger)]
UploadOrchestratorDep = Annotated[UploadOrchestrator, Depends(get_upload_orchestrator)]
UndoServiceDep = Annotated[UndoService, Depends(get_undo_service)]
