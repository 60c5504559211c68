"""HTTP interface: ingest, streamed chat, speech synthesis and health.

Routes:
- POST /ingest - Rebuild the knowledge base from the catalog
- POST /chat - Stream a grounded answer as plain text
- POST /tts - Synthesize speech for an answer text
- GET /health - Liveness check (unauthenticated)
"""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from .config import config
from .errors import MenuBotError, SourceUnavailable
from .pipeline import RAGPipeline

logger = config.get_logger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    query: str


class SpeechRequest(BaseModel):
    text: str


def get_pipeline(request: Request) -> RAGPipeline:
    """Return the app's pipeline, building it on first use."""  # noqa: DOC201
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        config.validate()
        pipeline = RAGPipeline()
        request.app.state.pipeline = pipeline
    return pipeline


def require_token(authorization: str | None = Header(default=None)) -> None:
    """Check the bearer token against API_AUTH_TOKEN.

    Raises:
        HTTPException(401): Token missing or wrong.
    """
    expected = config.API_AUTH_TOKEN
    if expected is None:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/ingest", dependencies=[Depends(require_token)])
async def ingest(pipeline: RAGPipeline = Depends(get_pipeline)) -> dict[str, str]:
    """Clear and rebuild the vector store from every catalog record.

    Returns:
        Human-readable summary of how many records were indexed.
    """
    result = await pipeline.reindex()
    return {"message": result.message}


@router.post("/chat", dependencies=[Depends(require_token)])
async def chat(
    request: ChatRequest,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """Stream the grounded answer to ``request.query``.

    Retrieval runs before the response starts, so its failures still produce
    a JSON error. Generation failures arrive as a terminal error fragment.

    Returns:
        Plain-text streaming response of raw answer fragments.

    Raises:
        HTTPException(400): Empty query.
    """
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")

    stream = await pipeline.open_answer_stream(request.query)
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")


@router.post("/tts", dependencies=[Depends(require_token)])
async def tts(
    request: SpeechRequest,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> Response:
    """Synthesize speech for ``request.text``.

    Returns:
        Raw audio bytes with the provider's content type.

    Raises:
        HTTPException(400): Empty text.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="No text provided for speech synthesis.")

    clip = await pipeline.synthesize(request.text)
    return Response(content=clip.data, media_type=clip.content_type)


async def _http_error(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc.errors())})


async def _domain_error(_: Request, exc: MenuBotError) -> JSONResponse:
    status = 502 if isinstance(exc, SourceUnavailable) else 500
    logger.error("Request failed with %s: %s", type(exc).__name__, exc)
    return JSONResponse(status_code=status, content={"error": str(exc)})


async def _config_error(_: Request, exc: ValueError) -> JSONResponse:
    logger.error("Request failed: %s", exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(pipeline: RAGPipeline | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        pipeline: Pre-built pipeline to serve. If None, one is created from
            configuration on the first request that needs it.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(title="MenuBot", version="1.0.0")
    app.state.pipeline = pipeline
    app.include_router(router)
    app.add_exception_handler(HTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(MenuBotError, _domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _config_error)  # type: ignore[arg-type]

    if config.API_AUTH_TOKEN is None:
        logger.warning("API_AUTH_TOKEN is not set; authentication is disabled")
    return app
