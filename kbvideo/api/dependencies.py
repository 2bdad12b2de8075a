"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be mocked for testing
- Configuration is centralized
- Resource lifecycle (connections, clients) is managed properly

Long-lived collaborators (storage backend, R2 client, mock database) are
created once per process; the pipeline itself is assembled per request.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Generator, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ..config.settings import Settings, get_settings
from ..core.videos.pipeline import VideoPipeline
from ..infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    create_snowflake_connection,
)
from ..infrastructure.snowflake.repositories.videos import (
    SnowflakeConfig,
    VideoRepository,
)
from ..infrastructure.storage.cleanup import CleanupCoordinator
from ..infrastructure.storage.client import MediaClient, create_media_client
from ..infrastructure.storage.selector import (
    RemoteBackend,
    StorageBackend,
    StorageSelector,
    resolve_storage_backend,
)
from ..infrastructure.uploads.receiver import UploadReceiver

logger = logging.getLogger(__name__)

# Bearer token security scheme; missing tokens are reported by verify_bearer_token
bearer_scheme = HTTPBearer(auto_error=False)

# Global instances (shared across requests)
_media_client: Optional[MediaClient] = None
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserIdentity:
    """The verified caller, as asserted by the auth service's token."""
    id: str
    email: Optional[str] = None


async def verify_bearer_token(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> UserIdentity:
    """
    Validate the bearer JWT and return the caller's identity.

    The token's `sub` claim is the owner id stored on videos. Raises 401
    when the token is missing, malformed, expired or badly signed.
    """
    if credentials is None or not credentials.credentials:
        logger.warning("Request missing auth token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing auth token",
        )

    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; rejecting token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid auth token",
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Invalid auth token", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid auth token",
        )

    subject = payload.get("sub")
    if not subject:
        logger.warning("Auth token has no subject")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid auth token",
        )

    return UserIdentity(id=str(subject), email=payload.get("email"))


# ---------------------------------------------------------------------------
# Storage Dependencies
# ---------------------------------------------------------------------------

@lru_cache()
def get_storage_backend() -> StorageBackend:
    """
    Resolve the storage backend once per process.

    For tests, override this dependency or call cache_clear().
    """
    backend = resolve_storage_backend(get_settings())
    logger.info(
        "Resolved storage backend",
        extra={"backend": backend.kind.value, "upload_dir": str(backend.upload_dir)}
    )
    return backend


def get_media_client(
    backend: Annotated[StorageBackend, Depends(get_storage_backend)],
) -> Optional[MediaClient]:
    """
    Provide the R2 client, or None when videos are stored locally.

    The client is created on first use and reused across requests.
    """
    global _media_client

    if not isinstance(backend, RemoteBackend):
        return None

    if _media_client is None:
        _media_client = create_media_client(config=backend.config)
        logger.info("Created R2 media client")

    return _media_client


def get_upload_receiver(
    settings: Annotated[Settings, Depends(get_settings)],
    backend: Annotated[StorageBackend, Depends(get_storage_backend)],
) -> UploadReceiver:
    return UploadReceiver(
        upload_dir=backend.upload_dir,
        max_size_bytes=settings.max_upload_size_bytes,
        chunk_size=settings.upload_chunk_size,
    )


# ---------------------------------------------------------------------------
# Repository Dependencies
# ---------------------------------------------------------------------------

def get_video_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[VideoRepository, None, None]:
    """
    Provide VideoRepository with database connection.

    This is a generator function (yields instead of returns) because
    we need to manage the connection lifecycle:
    1. Create connection
    2. Create repository
    3. Yield repository (FastAPI injects it)
    4. Close connection (cleanup after request)

    In mock mode, we reuse the same connection across requests
    so that data persists during the process.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")

        yield VideoRepository(_mock_snowflake_connection)
    else:
        config = SnowflakeConfig(
            account=settings.snowflake_account,
            user=settings.snowflake_user,
            password=settings.snowflake_password or None,
            private_key_path=settings.snowflake_private_key_path,
            database=settings.snowflake_database,
            schema=settings.snowflake_schema,
            warehouse=settings.snowflake_warehouse,
            role=settings.snowflake_role,
        )

        with create_snowflake_connection(config=config) as conn:
            logger.debug("Created VideoRepository with Snowflake connection")
            yield VideoRepository(conn)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def get_video_pipeline(
    backend: Annotated[StorageBackend, Depends(get_storage_backend)],
    media_client: Annotated[Optional[MediaClient], Depends(get_media_client)],
    receiver: Annotated[UploadReceiver, Depends(get_upload_receiver)],
    repository: Annotated[VideoRepository, Depends(get_video_repository)],
) -> VideoPipeline:
    folder_hint = backend.folder if isinstance(backend, RemoteBackend) else ""

    return VideoPipeline(
        receiver=receiver,
        selector=StorageSelector(backend, media_client),
        recorder=repository,
        cleanup=CleanupCoordinator(backend.upload_dir, media_client),
        folder_hint=folder_hint,
    )


# ---------------------------------------------------------------------------
# URL Resolution
# ---------------------------------------------------------------------------

def get_base_url(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Public base URL: BASE_URL when configured, else the request's scheme and host."""
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def get_media_domain(
    backend: Annotated[StorageBackend, Depends(get_storage_backend)],
) -> str:
    if isinstance(backend, RemoteBackend):
        return backend.media_domain
    return ""


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[UserIdentity, Depends(verify_bearer_token)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
StorageBackendDep = Annotated[StorageBackend, Depends(get_storage_backend)]
VideoRepositoryDep = Annotated[VideoRepository, Depends(get_video_repository)]
VideoPipelineDep = Annotated[VideoPipeline, Depends(get_video_pipeline)]
BaseUrlDep = Annotated[str, Depends(get_base_url)]
MediaDomainDep = Annotated[str, Depends(get_media_domain)]
