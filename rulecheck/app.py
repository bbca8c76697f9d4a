import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rulecheck.application import configure_analysis_service
from rulecheck.core.config import Settings
from rulecheck.core.errors import JobNotFound, RuleCheckError, ValidationError
from rulecheck.core.schema import ApiEnvelope
from rulecheck.infrastructure import configure_ocr_client, configure_rule_client
from rulecheck.infrastructure.gemini import GeminiRuleClient
from rulecheck.infrastructure.tesseract import TesseractOCRClient
from rulecheck.routes import analyze

LOG_FORMAT = "%(asctime)s [rulecheck] %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    envelope = ApiEnvelope(status=status_code, message=message, data=None, success=False)
    return JSONResponse(envelope.model_dump(), status_code=status_code)


def _install_clients(settings: Settings) -> None:
    if settings.ocr_url:
        configure_ocr_client(TesseractOCRClient(settings.ocr_url, timeout=settings.ocr_timeout))
        logger.info("OCR client configured for %s", settings.ocr_url)
    else:
        logger.warning("TESSERACT_API_URL is not set; scanned documents will yield empty text")

    if settings.gemini_api_key:
        configure_rule_client(
            GeminiRuleClient(
                settings.gemini_api_key,
                model=settings.gemini_model,
                api_base=settings.gemini_api_base,
                timeout=settings.inference_timeout,
            )
        )
        logger.info("Rule checking uses %s", settings.gemini_model)
    else:
        logger.warning("GEMINI_API_KEY is not set; every rule will be reported as failed")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, datefmt="%H:%M:%S")

    app = FastAPI(title="PDF Rule Check API", version="0.1.0")
    configure_analysis_service(settings)
    _install_clients(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(exc.status_code, str(exc))

    @app.exception_handler(JobNotFound)
    async def handle_not_found(_: Request, exc: JobNotFound) -> JSONResponse:
        return _error_response(404, "Analysis not found")

    @app.exception_handler(RuleCheckError)
    async def handle_internal_error(_: Request, exc: RuleCheckError) -> JSONResponse:
        logger.error("Request failed: %s", exc)
        return _error_response(500, str(exc) or "Internal Server Error")

    app.include_router(analyze.router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "OK"}

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "PDF Rule Check API",
                "docs": "/docs",
                "health": "/health",
            }
        )

    return app


app = create_app()
