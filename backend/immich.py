"""
Immich photo-library client (import collaborator).

Fetches the assets taken on a given day and maps them to the `Photo`
shape stored in day documents. Asset bytes are proxied through the
backend so the API key never reaches the browser.

Lookup order for `assets_for_day()`:
1. album scope (explicit `album_id` or `IMMICH_ALBUM_ID`), no fallback so
   assets from other albums never leak in;
2. the daily timeline bucket;
3. the monthly timeline bucket, filtered to the day.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import asyncio

import httpx
from loguru import logger


class ImmichError(RuntimeError):
    """Immich is not configured or answered with an error."""


def _unwrap(a: Dict[str, Any]) -> Dict[str, Any]:
    # album listings sometimes wrap the asset
    return a.get("asset") or a


def asset_taken_at(a: Dict[str, Any]) -> Optional[str]:
    asset = _unwrap(a)
    exif = asset.get("exifInfo") or {}
    return (
        exif.get("dateTimeOriginal")
        or asset.get("localDateTime")
        or asset.get("fileCreatedAt")
        or asset.get("createdAt")
    )


def _parse_ts(value: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def taken_on(a: Dict[str, Any], date: str) -> bool:
    """True if the asset was taken within the UTC day `date` (YYYY-MM-DD)."""

    t = asset_taken_at(a)
    ts = _parse_ts(t) if t else None
    if ts is None:
        return False
    start = datetime.fromisoformat(date).replace(tzinfo=timezone.utc)
    return start <= ts < start + timedelta(days=1)


def map_asset_to_photo(a: Dict[str, Any]) -> Dict[str, Any]:
    """Map an Immich asset to the stored `Photo` dict."""

    asset = _unwrap(a)
    exif = asset.get("exifInfo") or asset.get("exif") or {}
    asset_id = asset.get("id") or asset.get("assetId") or asset.get("_id")

    kind = str(asset.get("type") or asset.get("assetType") or "").upper()
    mime = asset.get("mimeType") or ""
    is_video = kind == "VIDEO" or mime.startswith("video/")

    duration = asset.get("duration")
    if not isinstance(duration, (int, float)):
        duration = exif.get("duration")

    return {
        "id": asset_id,
        "kind": "video" if is_video else "photo",
        "mimeType": mime or ("video/*" if is_video else "image/*"),
        "duration": duration,
        "url": f"/api/immich/assets/{asset_id}/original",
        "thumb": f"/api/immich/assets/{asset_id}/thumb",
        "taken_at": asset_taken_at(asset),
        "lat": exif.get("latitude"),
        "lon": exif.get("longitude"),
        "caption": exif.get("description") or asset.get("originalFileName") or "",
    }


class ImmichClient:
    """Thin async wrapper around the Immich REST API.

    Pass `transport` in tests (e.g. `httpx.MockTransport`).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        album_id: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.album_id = album_id
        self._client = httpx.AsyncClient(
            base_url=self.base_url or "http://immich.invalid",
            headers={"x-api-key": api_key} if api_key else {},
            transport=transport,
            timeout=timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_json(self, route: str) -> Any:
        if not self.configured:
            raise ImmichError("IMMICH_URL not set")
        res = await self._client.get(route)
        if res.status_code >= 400:
            raise ImmichError(f"Immich {res.status_code}: {res.text}")
        return res.json()

    async def fetch_asset(self, asset_id: str, variant: str) -> Tuple[int, bytes, Dict[str, str]]:
        """Return `(status, body, headers)` for an asset's original or thumbnail."""

        if not self.configured:
            raise ImmichError("IMMICH_URL not set")
        if variant == "thumb":
            route, default_type = f"/api/assets/{asset_id}/thumbnail?size=thumbnail", "image/jpeg"
        else:
            route, default_type = f"/api/assets/{asset_id}/original", "application/octet-stream"
        res = await self._client.get(route)
        headers = {
            "content-type": res.headers.get("content-type", default_type),
            "cache-control": res.headers.get("cache-control", "public, max-age=604800"),
        }
        return res.status_code, res.content, headers

    async def album_assets(self, album_id: str) -> List[Dict[str, Any]]:
        """All assets of an album, trying the embedded list first."""

        try:
            album = await self.fetch_json(f"/api/albums/{album_id}")
            if isinstance(album, dict) and isinstance(album.get("assets"), list) and album["assets"]:
                return album["assets"]
        except (ImmichError, httpx.HTTPError) as e:
            logger.warning("Failed to get album {} with assets: {}", album_id, e)

        res = await self.fetch_json(f"/api/albums/{album_id}/assets")
        if isinstance(res, list):
            return res
        return res.get("items") or res.get("assets") or []

    async def assets_for_day(self, date: str, album_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Photos taken on `date`, sorted by capture time."""

        effective_album = album_id or self.album_id
        if effective_album:
            try:
                assets = await self.album_assets(effective_album)
            except (ImmichError, httpx.HTTPError) as e:
                logger.warning("Album fetch failed for {}: {}", effective_album, e)
                return []
            photos = [map_asset_to_photo(a) for a in assets if taken_on(a, date)]
            logger.info("Album {}: found {} assets for {}", effective_album, len(photos), date)
            return _sorted(photos)

        for size, bucket in (("DAY", date), ("MONTH", date[:7])):
            try:
                photos = await self._bucket_photos(size, bucket, date)
            except (ImmichError, httpx.HTTPError) as e:
                logger.warning("{} timeline bucket lookup failed: {}", size, e)
                continue
            if photos:
                logger.info("Found {} assets for {} from {} bucket", len(photos), date, size)
                return _sorted(photos)

        logger.warning("No assets found for date {}", date)
        return []

    async def _bucket_photos(self, size: str, bucket: str, date: str) -> List[Dict[str, Any]]:
        res = await self.fetch_json(f"/api/timeline/bucket?size={size}&timeBucket={bucket}")
        ids = res.get("id") if isinstance(res, dict) else None
        if not isinstance(ids, list) or not ids:
            return []
        assets = await asyncio.gather(*(self._asset_or_none(i) for i in ids))
        return [map_asset_to_photo(a) for a in assets if a and taken_on(a, date)]

    async def _asset_or_none(self, asset_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.fetch_json(f"/api/assets/{asset_id}")
        except (ImmichError, httpx.HTTPError) as e:
            logger.warning("Failed to fetch asset {}: {}", asset_id, e)
            return None


def _sorted(photos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(photos, key=lambda p: p.get("taken_at") or "")


async def autoload_album(client: ImmichClient, days) -> int:
    """Merge every dated asset of the configured album into its day file.

    `days` is a `DayService`. Returns the number of photos considered.
    Errors for one day are logged and do not stop the others.
    """

    if not client.album_id:
        logger.warning("IMMICH_ALBUM_ID not set; autoload disabled")
        return 0
    try:
        assets = await client.album_assets(client.album_id)
    except (ImmichError, httpx.HTTPError) as e:
        logger.error("autoload: fetching album {} failed: {}", client.album_id, e)
        return 0

    photos = [p for p in map(map_asset_to_photo, assets) if p.get("taken_at")]
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for p in photos:
        groups.setdefault(p["taken_at"][:10], []).append(p)

    for date, day_photos in groups.items():
        try:
            added = await days.merge_imported(date, day_photos)
            logger.info("autoload: merged {} new photos into {}", added, date)
        except Exception:
            logger.exception("autoload: failed to write day {}", date)

    logger.info("autoload: processed {} photos", len(photos))
    return len(photos)
