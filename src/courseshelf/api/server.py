import json
import logging
from typing import BinaryIO, Optional

from aiohttp import hdrs, web
from pydantic import ValidationError

from courseshelf.api.auth import principal_from_request
from courseshelf.api.schemas import CreateCourseRequest, ImportVideosRequest, SetCompletionRequest
from courseshelf.models.media import Course, Video
from courseshelf.services.media_repository import DuplicateCourseError, EmptyCourseError, MediaRepository
from courseshelf.streaming import LocalStream, MediaStreamer, RemoteRedirect, StreamError
from courseshelf.streaming.streamer import parse_media_id

logger = logging.getLogger(__name__)

INTERNAL_ERROR = {"error": "Internal server error"}
UNAUTHORIZED = {"error": "You must be logged in to complete this action."}


def video_to_dict(video: Video) -> dict:
    return {
        "id": video.id,
        "title": video.title,
        "path": video.path,
        "completed": video.completed,
        "duration_seconds": video.duration_seconds,
        "is_remote": video.is_remote,
        "stream_url": video.path if video.is_remote else f"/api/stream?id={video.id}",
        "created_at": video.created_at.isoformat() if video.created_at else None
    }


def course_to_dict(course: Course) -> dict:
    return {
        "id": course.id,
        "name": course.name,
        "video_ids": course.video_ids,
        "created_at": course.created_at.isoformat() if course.created_at else None
    }


def error_response(error: StreamError) -> web.Response:
    """Convert a streaming failure into its JSON response."""
    headers = None
    if error.status == 416 and error.size is not None:
        headers = {hdrs.CONTENT_RANGE: f"bytes */{error.size}"}
    return web.json_response(error.to_dict(), status=error.status, headers=headers)


class ApiServer:
    """REST API and media stream server."""

    def __init__(self, repository: MediaRepository, streamer: MediaStreamer,
                 host: str = "0.0.0.0", port: int = 8080, auth_header: str = "X-Forwarded-User"):
        """
        Initialize the API server.

        Args:
            repository: Owner-scoped video and course storage
            streamer: Resolves stream requests to bytes on disk
            host: Interface to bind
            port: Port to bind
            auth_header: Header carrying the authenticated user id
        """
        self.repository = repository
        self.streamer = streamer
        self.host = host
        self.port = port
        self.auth_header = auth_header
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up the API routes."""
        self.app.router.add_get("/api/health", self.handle_health)

        # Streaming; GET also answers HEAD
        self.app.router.add_get("/api/stream", self.handle_stream)

        # Library routes
        self.app.router.add_get("/api/videos", self.handle_list_videos)
        self.app.router.add_post("/api/videos/import", self.handle_import_videos)
        self.app.router.add_put("/api/videos/{video_id}/completion", self.handle_set_completion)

        # Course routes
        self.app.router.add_get("/api/courses", self.handle_list_courses)
        self.app.router.add_post("/api/courses", self.handle_create_course)

    async def start(self) -> None:
        """Start the API server."""
        logger.info(f"Starting API server on port {self.port}")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"API server running on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the API server."""
        logger.info("Stopping API server")

        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("API server stopped")

    def _principal(self, request: web.Request) -> Optional[str]:
        return principal_from_request(request, self.auth_header)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    # Streaming

    async def handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Serve a video, whole or as a single byte range."""
        try:
            outcome = await self.streamer.resolve(
                request.query.get("id"),
                self._principal(request),
                request.headers.get(hdrs.RANGE)
            )

            if isinstance(outcome, StreamError):
                return error_response(outcome)

            if isinstance(outcome, RemoteRedirect):
                return web.Response(status=307, headers={hdrs.LOCATION: outcome.url})

            handle = await self.streamer.open(outcome)
            if isinstance(handle, StreamError):
                return error_response(handle)

        except Exception as e:
            logger.error(f"Error handling stream request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)

        try:
            return await self._send_window(request, outcome, handle)
        finally:
            handle.close()

    async def _send_window(self, request: web.Request, stream: LocalStream,
                           handle: BinaryIO) -> web.StreamResponse:
        """Write the response headers, then pipe the window from disk chunk by chunk."""
        response = web.StreamResponse(status=stream.status, headers=stream.headers)
        await response.prepare(request)

        if request.method == hdrs.METH_HEAD:
            await response.write_eof()
            return response

        sent = 0
        try:
            async for chunk in self.streamer.iter_window(handle, stream.window):
                await response.write(chunk)
                sent += len(chunk)
        except ConnectionResetError:
            logger.debug(f"Client went away after {sent} of {stream.window.length} bytes of {stream.path.name}")
            return response
        except OSError as e:
            logger.error(f"Error streaming {stream.path}: {e}", exc_info=True)
            return self._abort(request, response)

        if sent < stream.window.length:
            logger.error(f"Sent {sent} of {stream.window.length} bytes of {stream.path.name}, dropping connection")
            return self._abort(request, response)

        await response.write_eof()
        return response

    def _abort(self, request: web.Request, response: web.StreamResponse) -> web.StreamResponse:
        # Headers are already out, so the only option left is to drop the connection
        if request.transport is not None:
            request.transport.close()
        return response

    # Library

    async def handle_list_videos(self, request: web.Request) -> web.Response:
        """Handle a request to list the caller's videos."""
        try:
            owner_id = self._principal(request)
            if not owner_id:
                return web.json_response(UNAUTHORIZED, status=401)

            videos = await self.repository.list_videos(owner_id)

            return web.json_response({"videos": [video_to_dict(video) for video in videos]})

        except Exception as e:
            logger.error(f"Error handling list videos request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)

    async def handle_import_videos(self, request: web.Request) -> web.Response:
        """Handle a request to import a manifest of videos."""
        try:
            owner_id = self._principal(request)
            if not owner_id:
                return web.json_response(UNAUTHORIZED, status=401)

            try:
                data = ImportVideosRequest.model_validate(await request.json())
            except (json.JSONDecodeError, ValidationError):
                return web.json_response({"error": "Invalid video manifest"}, status=400)

            if not data.videos:
                return web.json_response({"error": "No videos provided to import."}, status=400)

            count = await self.repository.import_videos(
                owner_id, [(video.path, video.title) for video in data.videos]
            )

            return web.json_response({"ok": True, "message": f"Successfully imported {count} videos.", "count": count})

        except Exception as e:
            logger.error(f"Error handling import videos request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)

    async def handle_set_completion(self, request: web.Request) -> web.Response:
        """Handle a request to mark a video as watched or unwatched."""
        try:
            owner_id = self._principal(request)
            if not owner_id:
                return web.json_response(UNAUTHORIZED, status=401)

            video_id = parse_media_id(request.match_info["video_id"])
            if isinstance(video_id, StreamError):
                return web.json_response(video_id.to_dict(), status=400)

            try:
                data = SetCompletionRequest.model_validate(await request.json())
            except (json.JSONDecodeError, ValidationError):
                return web.json_response({"error": "Missing completed flag"}, status=400)

            if not await self.repository.set_video_completion(video_id, owner_id, data.completed):
                return web.json_response({"error": "Video not found"}, status=404)

            return web.json_response({"ok": True, "id": video_id, "completed": data.completed})

        except Exception as e:
            logger.error(f"Error handling set completion request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)

    # Courses

    async def handle_list_courses(self, request: web.Request) -> web.Response:
        """Handle a request to list the caller's courses."""
        try:
            owner_id = self._principal(request)
            if not owner_id:
                return web.json_response(UNAUTHORIZED, status=401)

            courses = await self.repository.list_courses(owner_id)

            return web.json_response({"courses": [course_to_dict(course) for course in courses]})

        except Exception as e:
            logger.error(f"Error handling list courses request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)

    async def handle_create_course(self, request: web.Request) -> web.Response:
        """Handle a request to save a course."""
        try:
            owner_id = self._principal(request)
            if not owner_id:
                return web.json_response(UNAUTHORIZED, status=401)

            try:
                data = CreateCourseRequest.model_validate(await request.json())
            except (json.JSONDecodeError, ValidationError):
                return web.json_response({"error": "Invalid course"}, status=400)

            name = data.name.strip()
            if not name:
                return web.json_response({"error": "Please provide a course name."}, status=400)

            if not data.video_ids:
                return web.json_response({"error": "No videos available to save."}, status=400)

            try:
                course = await self.repository.create_course(owner_id, name, data.video_ids)
            except DuplicateCourseError:
                return web.json_response({"error": "You already have a course with that name."}, status=409)
            except EmptyCourseError:
                return web.json_response({"error": "No videos available to save."}, status=400)

            return web.json_response({"course": course_to_dict(course)}, status=201)

        except Exception as e:
            logger.error(f"Error handling create course request: {e}", exc_info=True)
            return web.json_response(INTERNAL_ERROR, status=500)
