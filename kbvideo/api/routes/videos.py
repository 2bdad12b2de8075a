"""
Video API endpoints.

Upload flow:
1. Client posts multipart form data: `video` file + `subtopicId`
2. Bytes are staged locally under the size ceiling
3. The staged file is stored (kept locally, or uploaded to R2)
4. A record is written only after the bytes are stored
5. The response carries the resolved URL and thumbnail URL

Reads are public by id or by subtopic; listing, reassigning and deleting
require a bearer token, and mutations are restricted to the owner.
Errors are rendered as {"error": message} by the app's exception handlers.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, Query, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.videos.errors import UnexpectedError, ValidationError, VideoServiceError
from ...core.videos.models import Page, VideoAsset
from ...core.videos.urls import resolve
from ..dependencies import (
    AuthenticatedUser,
    BaseUrlDep,
    MediaDomainDep,
    VideoPipelineDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class VideoResponse(BaseModel):
    """A stored video with its servable URLs."""
    id: str
    subtopic_id: str
    filename: str = Field(description="Stored identifier: local filename or R2 object key")
    original_name: str
    mime_type: str
    size_bytes: int
    created_at: datetime
    url: str = Field(description="Where the video can be fetched")
    thumbnail_url: str = Field(description="Frame thumbnail URL, empty for local videos")


class VideoEnvelope(BaseModel):
    video: VideoResponse


class VideoListResponse(BaseModel):
    videos: list[VideoResponse]
    page: int
    limit: int
    total: int


class SubtopicVideosResponse(BaseModel):
    videos: list[VideoResponse]


class ReassignRequest(BaseModel):
    """Move a video to another subtopic."""
    model_config = ConfigDict(populate_by_name=True)

    subtopic_id: Optional[str] = Field(default=None, alias="subtopicId")


class DeleteResponse(BaseModel):
    success: bool


def to_video_response(asset: VideoAsset, base_url: str, media_domain: str) -> VideoResponse:
    urls = resolve(asset, base_url, media_domain)
    return VideoResponse(
        id=asset.id,
        subtopic_id=asset.subtopic_id,
        filename=asset.filename,
        original_name=asset.original_name,
        mime_type=asset.mime_type,
        size_bytes=asset.size_bytes,
        created_at=asset.created_at,
        url=urls.url,
        thumbnail_url=urls.thumbnail_url,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=VideoEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a video",
    description="Multipart upload of a single video attached to a subtopic.",
)
async def upload_video(
    user: AuthenticatedUser,
    pipeline: VideoPipelineDep,
    background_tasks: BackgroundTasks,
    base_url: BaseUrlDep,
    media_domain: MediaDomainDep,
    subtopic_id: Annotated[Optional[str], Form(alias="subtopicId")] = None,
    video: Annotated[Optional[UploadFile], File()] = None,
) -> VideoEnvelope:
    if not subtopic_id or not subtopic_id.strip():
        raise ValidationError("subtopicId is required")

    if video is None:
        raise ValidationError("video file is required")

    try:
        asset = await pipeline.upload(
            stream=video,
            declared_name=video.filename,
            declared_mime_type=video.content_type,
            subtopic_id=subtopic_id.strip(),
            user_id=user.id,
            defer=background_tasks.add_task,
        )
    finally:
        await video.close()

    return VideoEnvelope(video=to_video_response(asset, base_url, media_domain))


@router.get(
    "",
    response_model=VideoListResponse,
    summary="List videos",
    description="Newest first, optionally filtered by subtopic.",
)
async def list_videos(
    user: AuthenticatedUser,
    pipeline: VideoPipelineDep,
    base_url: BaseUrlDep,
    media_domain: MediaDomainDep,
    subtopic_id: Annotated[Optional[str], Query(alias="subtopicId")] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
) -> VideoListResponse:
    paging = Page.from_query(page, limit)

    try:
        assets, total = await pipeline.list_videos(subtopic_id or None, paging)
    except VideoServiceError:
        raise
    except Exception as e:
        logger.error(
            "Failed to list videos",
            extra={"subtopic_id": subtopic_id, "user_id": user.id, "error": str(e)}
        )
        raise UnexpectedError("Failed to fetch videos") from e

    return VideoListResponse(
        videos=[to_video_response(asset, base_url, media_domain) for asset in assets],
        page=paging.page,
        limit=paging.limit,
        total=total,
    )


# Defined before /{video_id} so "subtopic" isn't captured as an id
@router.get(
    "/subtopic/{subtopic_id}",
    response_model=SubtopicVideosResponse,
    summary="List a subtopic's videos",
)
async def list_subtopic_videos(
    subtopic_id: str,
    pipeline: VideoPipelineDep,
    base_url: BaseUrlDep,
    media_domain: MediaDomainDep,
) -> SubtopicVideosResponse:
    try:
        assets = await pipeline.list_by_subtopic(subtopic_id)
    except VideoServiceError:
        raise
    except Exception as e:
        logger.error(
            "Failed to list subtopic videos",
            extra={"subtopic_id": subtopic_id, "error": str(e)}
        )
        raise UnexpectedError("Failed to fetch videos") from e

    return SubtopicVideosResponse(
        videos=[to_video_response(asset, base_url, media_domain) for asset in assets],
    )


@router.get(
    "/{video_id}",
    response_model=VideoEnvelope,
    summary="Get a video",
    responses={404: {"description": "Video not found"}},
)
async def get_video(
    video_id: str,
    pipeline: VideoPipelineDep,
    base_url: BaseUrlDep,
    media_domain: MediaDomainDep,
) -> VideoEnvelope:
    asset = await pipeline.get_video(video_id)
    return VideoEnvelope(video=to_video_response(asset, base_url, media_domain))


@router.patch(
    "/{video_id}",
    response_model=VideoEnvelope,
    summary="Move a video to another subtopic",
    responses={404: {"description": "Video not found or not owned by caller"}},
)
async def reassign_video(
    video_id: str,
    user: AuthenticatedUser,
    pipeline: VideoPipelineDep,
    base_url: BaseUrlDep,
    media_domain: MediaDomainDep,
    body: Optional[ReassignRequest] = None,
) -> VideoEnvelope:
    subtopic_id = body.subtopic_id.strip() if body and body.subtopic_id else ""
    if not subtopic_id:
        raise ValidationError("subtopicId is required")

    asset = await pipeline.reassign(video_id, user.id, subtopic_id)
    return VideoEnvelope(video=to_video_response(asset, base_url, media_domain))


@router.delete(
    "/{video_id}",
    response_model=DeleteResponse,
    summary="Delete a video",
    responses={404: {"description": "Video not found or not owned by caller"}},
)
async def delete_video(
    video_id: str,
    user: AuthenticatedUser,
    pipeline: VideoPipelineDep,
    background_tasks: BackgroundTasks,
) -> DeleteResponse:
    await pipeline.delete(video_id, user.id, defer=background_tasks.add_task)
    return DeleteResponse(success=True)
