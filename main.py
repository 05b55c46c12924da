from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import logging

from config import settings
from errors import DomainError, ErrorKind, HTTP_STATUS_FOR_KIND

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(message)s")
log = logging.getLogger(__name__)

def create_app() -> FastAPI:
    app = FastAPI(
        title="GTSD Science API",
        version="1.0.0",
        description="Evidence-based nutrition targets and weekly plans.",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Process-Time-Ms"] = f"{elapsed:.2f}"
        return response

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code = HTTP_STATUS_FOR_KIND[exc.kind]
        if status_code >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        first = problems[0] if problems else {"field": None, "message": "Invalid request."}
        body = {"error": ErrorKind.validation.value, "detail": first["message"], "context": {"errors": problems}}
        if first["field"]:
            body["field"] = first["field"]
        return JSONResponse(status_code=400, content=body)

    @app.on_event("startup")
    async def startup():
        from database import init_db
        import models  # ensure all models are registered
        await init_db()
        log.info("Database tables created.")

    @app.on_event("shutdown")
    async def shutdown():
        from database import dispose_db
        await dispose_db()

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "ok", "version": "1.0.0"}

    from routes import profile_router, plans_router
    app.include_router(profile_router, prefix="/profile", tags=["Profile"])
    app.include_router(plans_router, prefix="/plans", tags=["Plans"])

    return app


app = create_app()
