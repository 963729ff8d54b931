from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, List, Literal, Optional
import asyncio
import json

from fastapi import Body, FastAPI, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

import anon
from errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from immich import ImmichClient, ImmichError, autoload_album
from local_import import scan_test_photos
from locks import KeyLockManager
from log import init_logging
from models import (
    ID_PATTERN,
    SLUG_PATTERN,
    CommentEditIn,
    CommentIn,
    MetaPatchIn,
    PublishIn,
    ReactIn,
)
from publisher import GitPublisher, NullPublisher
from repo_days import DayRepo
from repo_interactions import InteractionRepo
from service_days import DayService
from service_interactions import InteractionService
from settings import Settings, settings

Kind = Literal["photo", "stack"]


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _parse_photo_ids(raw: Optional[str]) -> List[Any]:
    """`photos` query value as a list; anything malformed counts as empty."""

    if not raw:
        return []
    try:
        ids = json.loads(raw)
    except ValueError:
        return []
    return ids if isinstance(ids, list) else []


def _check_calendar_date(date: str) -> None:
    """`2024-02-30` matches the slug grammar but is not a day."""

    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid date: {date}")


def create_app(cfg: Settings = settings, publisher=None, immich: Optional[ImmichClient] = None) -> FastAPI:
    """Build the app around one set of repos/services.

    The repos + services are instantiated here so the routes remain thin
    and tests can pass their own `Settings`, a fake publisher or an Immich
    client on a mock transport.
    """

    locks = KeyLockManager()
    if publisher is None:
        publisher = GitPublisher(cfg.repo_dir, push=cfg.git_push) if cfg.git_publish else NullPublisher()
    if immich is None:
        immich = ImmichClient(cfg.immich_url, cfg.immich_api_key, cfg.immich_album_id)

    interactions = InteractionService(InteractionRepo(cfg.interactions_dir), locks, publisher)
    days = DayService(DayRepo(cfg.days_dir), locks, publisher)

    async def autoload_forever() -> None:
        while True:
            try:
                await autoload_album(immich, days)
            except Exception:
                logger.exception("autoload run failed")
            await asyncio.sleep(cfg.autoload_interval_s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if immich.album_id and immich.configured:
            task = asyncio.create_task(autoload_forever())
        logger.info("Backend serving data from {}", cfg.data_dir)
        yield
        if task is not None:
            task.cancel()
        await publisher.drain()
        await immich.aclose()

    app = FastAPI(title="Travel Blog Backend", lifespan=lifespan)
    app.state.locks = locks
    app.state.publisher = publisher
    app.state.interactions = interactions
    app.state.days = days

    # ---- errors -------------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        errs = exc.errors()
        msg = errs[0].get("msg", "invalid request") if errs else "invalid request"
        return _error(400, msg)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(UnauthorizedError)
    async def _unauthorized(request: Request, exc: UnauthorizedError):
        return _error(401, str(exc))

    @app.exception_handler(ForbiddenError)
    async def _forbidden(request: Request, exc: ForbiddenError):
        return _error(403, str(exc))

    @app.exception_handler(ImmichError)
    async def _immich(request: Request, exc: ImmichError):
        logger.warning("Immich request failed: {}", exc)
        return _error(502, f"Failed to fetch photos from Immich: {exc}")

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception):
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
        return _error(500, "internal error")

    # ---- identity -----------------------------------------------------------

    @app.middleware("http")
    async def anon_identity(request: Request, call_next):
        raw = request.cookies.get(anon.COOKIE_NAME)
        anon_id = anon.unpack(cfg.anon_cookie_secret, raw)
        fresh = anon_id is None
        if fresh:
            anon_id = anon.new_id()
        request.state.anon_id = anon_id
        response = await call_next(request)
        if fresh:
            response.set_cookie(
                anon.COOKIE_NAME,
                anon.pack(cfg.anon_cookie_secret, anon_id),
                max_age=anon.COOKIE_MAX_AGE,
                httponly=True,
                samesite="lax",
                secure=request.url.scheme == "https",
                path="/",
            )
        return response

    def is_admin(request: Request) -> bool:
        if not cfg.admin_token:
            return True  # no token configured
        h = request.headers.get("x-admin-token") or request.headers.get("authorization") or ""
        token = h[7:] if h.lower().startswith("bearer ") else h
        return token.strip() == cfg.admin_token

    def require_admin(request: Request) -> None:
        if not is_admin(request):
            raise UnauthorizedError("Unauthorized")

    # ---- health / config ----------------------------------------------------

    @app.get("/api/health")
    async def health():
        return {"ok": True, "dataRoot": str(cfg.data_dir)}

    @app.get("/api/user/me")
    async def user_me(request: Request):
        return {"anonId": request.state.anon_id}

    @app.get("/api/admin/config")
    async def admin_config():
        missing = []
        if not cfg.immich_url:
            missing.append("IMMICH_URL")
        if not cfg.immich_api_keys:
            missing.append("IMMICH_API_KEYS")
        return {
            "immichUrl": cfg.immich_url,
            "immichAlbumId": cfg.immich_album_id,
            "hasImmichKeys": bool(cfg.immich_api_keys),
            "hasAdminToken": bool(cfg.admin_token),
            "serverPort": cfg.port,
            "immichConfigured": bool(cfg.immich_url and cfg.immich_api_keys),
            "gitPublish": cfg.git_publish,
            "configSource": "environment",
            "missingConfig": missing,
        }

    # ---- days ---------------------------------------------------------------

    @app.get("/api/days")
    async def list_days():
        return days.list_days()

    @app.get("/api/day/{slug}")
    async def get_day(slug: str = Path(pattern=SLUG_PATTERN)):
        return days.get(slug)

    @app.put("/api/day/{slug}")
    async def put_day(request: Request, slug: str = Path(pattern=SLUG_PATTERN), doc: Any = Body(None)):
        require_admin(request)
        await days.put(slug, doc)
        return {"ok": True}

    @app.patch("/api/day/{slug}/photo/{photo_id}")
    async def patch_photo(
        request: Request, body: MetaPatchIn, slug: str = Path(pattern=SLUG_PATTERN), photo_id: str = Path()
    ):
        require_admin(request)
        await days.update_photo(slug, photo_id, caption=body.effective_caption, title=body.title)
        return {"ok": True}

    @app.patch("/api/day/{slug}/stack/{stack_id}")
    async def patch_stack(
        request: Request,
        body: MetaPatchIn,
        slug: str = Path(pattern=SLUG_PATTERN),
        stack_id: str = Path(pattern=ID_PATTERN),
    ):
        require_admin(request)
        await days.update_stack_meta(slug, stack_id, caption=body.effective_caption, title=body.title)
        return {"ok": True}

    @app.delete("/api/day/{slug}/photo/{photo_id}")
    async def delete_photo(request: Request, slug: str = Path(pattern=SLUG_PATTERN), photo_id: str = Path()):
        require_admin(request)
        await days.delete_photo(slug, photo_id)
        return {"ok": True, "message": "Photo deleted successfully"}

    @app.post("/api/publish")
    async def publish(request: Request, body: PublishIn):
        require_admin(request)
        added, total = await days.append_photos(body.date, body.photos, body.title)
        return {"ok": True, "added": added, "total": total}

    # ---- imports ------------------------------------------------------------

    @app.get("/api/immich/day")
    async def immich_day(date: str = Query(pattern=SLUG_PATTERN), album_id: Optional[str] = Query(None, alias="albumId")):
        _check_calendar_date(date)
        if not immich.configured:
            raise ImmichError("IMMICH_URL not set")
        photos = await immich.assets_for_day(date, album_id)
        return {"date": date, "albumId": album_id, "count": len(photos), "photos": photos}

    @app.get("/api/immich/assets/{asset_id}/{variant}")
    async def immich_asset(
        asset_id: str = Path(pattern=ID_PATTERN), variant: Literal["original", "thumb"] = Path()
    ):
        status, content, headers = await immich.fetch_asset(asset_id, variant)
        if status >= 400:
            return Response(content=content, status_code=status)
        return Response(
            content=content,
            media_type=headers["content-type"],
            headers={"cache-control": headers["cache-control"]},
        )

    @app.get("/api/local/day")
    async def local_day(date: str = Query(pattern=SLUG_PATTERN)):
        photos = scan_test_photos(cfg.public_dir, date)
        return {"date": date, "count": len(photos), "photos": photos}

    # ---- interactions (photo + stack share routes) --------------------------

    @app.get("/api/{kind}/{subject_id}/interactions")
    async def get_interactions(
        kind: Kind,
        subject_id: str = Path(pattern=ID_PATTERN),
        include_rollup: bool = Query(False, alias="includeRollup"),
        photos: Optional[str] = Query(None),
    ):
        if kind == "stack" and include_rollup:
            return interactions.rollup(subject_id, _parse_photo_ids(photos))
        return interactions.get(kind, subject_id)

    @app.post("/api/{kind}/{subject_id}/react")
    async def react(kind: Kind, body: ReactIn, subject_id: str = Path(pattern=ID_PATTERN)):
        count, removed = await interactions.react(kind, subject_id, body.emoji, body.action)
        return {"ok": True, "count": count, "removed": removed}

    @app.post("/api/{kind}/{subject_id}/comment")
    async def add_comment(request: Request, kind: Kind, body: CommentIn, subject_id: str = Path(pattern=ID_PATTERN)):
        comment = await interactions.comment(
            kind,
            subject_id,
            body.text,
            author=body.author,
            author_id=request.state.anon_id,
            parent_id=body.parent_id,
        )
        return {"ok": True, "comment": comment}

    @app.put("/api/{kind}/{subject_id}/comment/{comment_id}")
    async def edit_comment(
        request: Request,
        kind: Kind,
        body: CommentEditIn,
        subject_id: str = Path(pattern=ID_PATTERN),
        comment_id: str = Path(),
    ):
        comment = await interactions.edit_comment(
            kind, subject_id, comment_id, body.text, caller_id=request.state.anon_id, is_admin=is_admin(request)
        )
        return {"ok": True, "comment": comment}

    @app.delete("/api/{kind}/{subject_id}/comment/{comment_id}", status_code=204)
    async def delete_comment(
        request: Request, kind: Kind, subject_id: str = Path(pattern=ID_PATTERN), comment_id: str = Path()
    ):
        await interactions.delete_comment(
            kind, subject_id, comment_id, caller_id=request.state.anon_id, is_admin=is_admin(request)
        )
        return Response(status_code=204)

    # static site last so /api routes win
    if cfg.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(cfg.public_dir), html=True), name="public")

    return app


init_logging(settings.log_level, settings.log_dir)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
