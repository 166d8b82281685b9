"""Strudel Studio — FastAPI app for agentic Strudel pattern generation.

Loads config.yaml on startup. Exposes two transports over the same agent
loop: /generate (one JSON response, tight budget) and /generate/stream
(SSE progress events, patient budget), plus a tool-less /chat stream and
operational endpoints for health, config viewing, and hot-reload.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from studio.agents.capability import (
    AnthropicCapability,
    GenerationCapability,
    classify_upstream_error,
)
from studio.config import (
    MissingCredentialError,
    StudioConfig,
    get_config,
    load_config,
    reload_config,
    require_model_credential,
)
from studio.genres import GENRE_PROFILES
from studio.progress import CompleteEvent, ErrorReason
from studio.prompts import CHAT_DIRECTIVE
from studio.runtime import execute_run, run_to_completion, to_messages
from studio.schemas import GenerateRequest
from studio.tools.reference import set_max_chars

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

ERROR_STATUS = {
    ErrorReason.BUDGET_EXCEEDED: 504,
    ErrorReason.RATE_LIMITED: 429,
    ErrorReason.AUTHENTICATION: 500,
    ErrorReason.UPSTREAM: 502,
    ErrorReason.CONFIGURATION: 500,
    ErrorReason.INTERNAL: 500,
}


def apply_config(config: StudioConfig) -> None:
    """Push config values into modules that read them per call."""
    set_max_chars(config.reference_max_chars)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the active config on startup."""
    config = get_config()
    logger.info(
        f"Strudel Studio started (model={config.model}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"profiles={sorted(config.profiles)})"
    )
    yield
    logger.info("Strudel Studio shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()
apply_config(_boot_config)

app = FastAPI(title="Strudel Studio", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reject malformed bodies before any model call."""
    errors = exc.errors()
    detail = "invalid body"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first.get('msg', 'invalid')}"
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request: messages array required", "detail": detail},
    )


@app.exception_handler(MissingCredentialError)
async def missing_credential(request: Request, exc: MissingCredentialError) -> JSONResponse:
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": str(exc), "reason": ErrorReason.CONFIGURATION.value},
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return  # auth disabled, no key configured

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_capability() -> GenerationCapability:
    """Build the model client. Raises MissingCredentialError before any call."""
    config = get_config()
    return AnthropicCapability(
        model=config.model,
        max_tokens=config.max_tokens,
        api_key=require_model_credential(),
    )


# ---------------------------------------------------------------------------
# Generation endpoints
# ---------------------------------------------------------------------------


@app.post("/generate", dependencies=[Depends(verify_api_key)])
async def generate(
    request: GenerateRequest,
    capability: GenerationCapability = Depends(get_capability),
):
    """Run the fast-path loop and answer with a single JSON body."""
    config = get_config()
    terminal = await run_to_completion(config, "fast", request.messages, capability)

    if isinstance(terminal, CompleteEvent):
        return terminal.model_dump(by_alias=True, exclude={"kind"})

    body = terminal.model_dump(by_alias=True, exclude={"kind"}, mode="json")
    if terminal.reason == ErrorReason.BUDGET_EXCEEDED:
        body["timeout"] = True
    return JSONResponse(status_code=ERROR_STATUS[terminal.reason], content=body)


@app.post("/generate/stream", dependencies=[Depends(verify_api_key)])
async def generate_stream(
    request: GenerateRequest,
    capability: GenerationCapability = Depends(get_capability),
):
    """Run the patient-path loop, streaming progress as Server-Sent Events."""
    config = get_config()

    async def stream():
        async for event in execute_run(config, "patient", request.messages, capability):
            yield event.to_sse()

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/chat", dependencies=[Depends(verify_api_key)])
async def chat(
    request: GenerateRequest,
    capability: GenerationCapability = Depends(get_capability),
):
    """Stream a plain-text producer reply. No tools, no validation."""
    messages = to_messages(request.messages)

    async def stream():
        try:
            async for text in capability.stream_text(CHAT_DIRECTIVE, messages):
                yield text
        except Exception as e:
            logger.error(f"Chat stream error: {e}", exc_info=True)
            yield f"\n\n[Error: {classify_upstream_error(e).message}]"

    return StreamingResponse(
        stream(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
    )


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/genres")
async def list_genres():
    """Genres the model can look up, with their production profile."""
    return {
        "genres": [
            {"name": name, "bpm": p.bpm, "key": p.key, "vibe": p.vibe}
            for name, p in GENRE_PROFILES.items()
        ]
    }


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {"status": "healthy", "model": config.model, "profiles": sorted(config.profiles)}


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, without secrets."""
    return get_config().model_dump(exclude={"api_key"})


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload():
    """Hot-reload config.yaml without a restart."""
    try:
        new_config = reload_config()
        apply_config(new_config)
        return {"status": "reloaded", "profiles": sorted(new_config.profiles)}
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
