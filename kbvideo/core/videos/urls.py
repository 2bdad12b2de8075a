"""
Public URL resolution for stored videos.

Resolution is a pure function of the persisted asset, the request's base
URL and the configured media domain. The same inputs always produce the
same URLs, which keeps list and detail responses consistent across
backends.

Remote thumbnails use Cloudflare media transformations on the domain that
serves the bucket: a single 640x360 JPEG frame, cover-cropped.
"""

from urllib.parse import quote

from .models import ResolvedUrls, VideoAsset, is_remote_location

LOCAL_UPLOADS_PREFIX = "/uploads"

# Media transformations have no automatic frame or format selection, so the
# frame is pinned to the first one and encoded as JPEG.
THUMBNAIL_TEMPLATE = (
    "https://{domain}/cdn-cgi/media/"
    "mode=frame,time=0s,width=640,height=360,fit=cover,format=jpg/{public_id}"
)


def build_local_url(base_url: str, filename: str) -> str:
    """Link to a file served from the local uploads mount."""
    if not filename:
        return ""
    return f"{base_url.rstrip('/')}{LOCAL_UPLOADS_PREFIX}/{filename}"


def build_thumbnail_url(public_id: str, media_domain: str) -> str:
    """
    Thumbnail URL for a remote video, or "" when it can't be built.

    The public id keeps its folder separators so the transformation
    resolves it as a path on the same zone.
    """
    if not public_id or not media_domain:
        return ""
    domain = media_domain.strip().rstrip("/")
    if "://" in domain:
        domain = domain.split("://", 1)[1]
    return THUMBNAIL_TEMPLATE.format(
        domain=domain,
        public_id=quote(public_id, safe="/"),
    )


def resolve(asset: VideoAsset, base_url: str, media_domain: str = "") -> ResolvedUrls:
    """
    Derive the servable URL and thumbnail URL for an asset.

    Remote assets are served from their stored URL verbatim. Local assets
    are served from the uploads mount under the request's base URL and have
    no thumbnail.
    """
    if is_remote_location(asset.storage_path):
        return ResolvedUrls(
            url=asset.storage_path,
            thumbnail_url=build_thumbnail_url(asset.filename, media_domain),
        )

    return ResolvedUrls(
        url=build_local_url(base_url, asset.filename),
        thumbnail_url="",
    )
