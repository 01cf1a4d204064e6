import io
import json
import logging
from typing import List, Optional

import qrcode
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, settings as default_settings
from database import get_store
from errors import BadRequestError, GatePassError
from logging_config import setup_logging
from schemas import CreatePassBody, LoginBody, ReviewBody, UserPublic
from service import GatePassService

logger = logging.getLogger(__name__)


# -----------------------------
# Dependencies
# -----------------------------

def get_service(request: Request) -> GatePassService:
    return request.app.state.service


def available_routes(app: FastAPI) -> List[str]:
    """``METHOD /path`` for every API route, in registration order."""
    routes = []
    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api/"):
            for method in sorted(route.methods - {"HEAD"}):
                routes.append(f"{method} {route.path}")
    return routes


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


# -----------------------------
# Exception handlers
# -----------------------------

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatePassError)
    async def gate_pass_error_handler(request: Request, exc: GatePassError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected body for %s %s: %s", request.method, request.url.path, exc.errors())
        return _error(400, "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods both read as "no such endpoint".
        if exc.status_code in (404, 405):
            return _error(404, "API endpoint not found", availableRoutes=available_routes(request.app))
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


# -----------------------------
# Routes
# -----------------------------

def register_routes(app: FastAPI) -> None:
    @app.get("/")
    def root():
        return {"message": app.title, "status": "ok"}

    @app.get("/test")
    def test_database(service: GatePassService = Depends(get_service)):
        storage = service.store.describe()
        dataset = service.store.load()
        return {
            "backend": "✅ Running",
            "storage": storage,
            "database": "✅ Available" if storage["exists"] else "⚠️ No data file yet",
            "users": len(dataset.users),
            "requests": len(dataset.requests),
        }

    # 1) Login
    @app.post("/api/login")
    def login(body: Optional[LoginBody] = None, service: GatePassService = Depends(get_service)):
        body = body or LoginBody()
        user = service.authenticate(body.user_id, body.password, body.role)
        public = UserPublic(id=user.id, name=user.name, role=user.role)
        return {"success": True, "message": "Login successful", "user": public.model_dump(by_alias=True)}

    # 2) Create gate pass request (student)
    @app.post("/api/requests", status_code=201)
    def create_request(body: Optional[CreatePassBody] = None, service: GatePassService = Depends(get_service)):
        body = body or CreatePassBody()
        created = service.create_request(body.student_id, body.student_name, body.reason, body.return_time)
        return {"success": True, "message": "Request created successfully", "request": created.to_public()}

    # 3) All requests (moderator)
    @app.get("/api/requests")
    def list_requests(service: GatePassService = Depends(get_service)):
        return {"success": True, "requests": [r.to_public() for r in service.list_requests()]}

    # 4) Requests of one student
    @app.get("/api/requests/student/{student_id}")
    def list_student_requests(student_id: str, service: GatePassService = Depends(get_service)):
        requests = service.list_requests_by_student(student_id)
        return {"success": True, "requests": [r.to_public() for r in requests]}

    # 5) Moderator review
    @app.put("/api/requests/{request_id}/review")
    def review_request(
        request_id: str,
        body: Optional[ReviewBody] = None,
        service: GatePassService = Depends(get_service),
    ):
        body = body or ReviewBody()
        reviewed = service.review_request(
            request_id, body.status, body.moderator_id, body.moderator_name, body.remarks
        )
        return {
            "success": True,
            "message": f"Request {reviewed.status.lower()} successfully",
            "request": reviewed.to_public(),
        }

    # 6) Gatekeeper verification
    @app.get("/api/verify/{student_id}")
    def verify_pass(student_id: str, service: GatePassService = Depends(get_service)):
        result = service.verify_pass(student_id)
        if not result.has_pass:
            return {"success": True, "hasPass": False, "message": "No valid approved pass found for this student"}
        return {"success": True, "hasPass": True, "pass": result.gate_pass.to_public()}

    # 7) Gatekeeper marks pass as used
    @app.put("/api/requests/{request_id}/use")
    def mark_used(request_id: str, service: GatePassService = Depends(get_service)):
        service.mark_used(request_id)
        return {"success": True, "message": "Pass marked as used successfully"}

    # 8) Dashboard statistics
    @app.get("/api/stats")
    def stats(service: GatePassService = Depends(get_service)):
        return {"success": True, "stats": service.compute_stats().model_dump(by_alias=True)}

    # 9) QR code for an approved pass
    @app.get("/api/requests/{request_id}/qr")
    def pass_qr(request_id: str, service: GatePassService = Depends(get_service)):
        gp = service.get_request(request_id)
        if gp.status != "Approved":
            raise BadRequestError("Request not approved")
        payload = {
            "requestId": gp.id,
            "studentId": gp.student_id,
            "status": gp.status,
            "used": gp.used,
        }
        img = qrcode.make(json.dumps(payload))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)
        return StreamingResponse(buf, media_type="image/png")


# -----------------------------
# Application factory
# -----------------------------

def create_app(settings: Optional[Settings] = None, store=None, clock=None) -> FastAPI:
    """Build the API around one storage handle.

    ``store`` and ``clock`` default to the configured storage backend and
    the wall clock; tests pass an in-memory store and a fixed clock.
    """
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    service_kwargs = {"id_prefix": settings.request_id_prefix}
    if clock is not None:
        service_kwargs["clock"] = clock
    app.state.service = GatePassService(store if store is not None else get_store(settings), **service_kwargs)

    register_exception_handlers(app)
    register_routes(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    storage = app.state.service.store.describe()
    logger.info("College gate pass backend on http://%s:%s", default_settings.host, default_settings.port)
    logger.info("Storage: %s (%s)", storage["backend"], storage["location"])
    for route in available_routes(app):
        logger.info("  %s", route)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
