from fastapi import FastAPI, APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse, Response
from contextlib import asynccontextmanager
from typing import List, Literal, Optional
from pydantic import BaseModel, ValidationError as PydanticValidationError
import json
import logging
import time
import uuid
from studio import config
from studio.database import engine, create_db_and_tables
from studio.errors import RelayError, ValidationError
from studio.openai_client import OpenAIClient
from studio.persistence import Store, fire_and_forget


# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')
logger = logging.getLogger(__name__)

store = Store(engine)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    create_db_and_tables(store.engine)
    yield


app = FastAPI(lifespan=lifespan)  ## FastAPI instance
router = APIRouter()


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class ChatRequest(BaseModel):  # validates incoming chat requests
    messages: List[ChatTurn]

class ImageRequest(BaseModel):
    prompt: Optional[str] = None
    size: str = config.DEFAULT_IMAGE_SIZE
    style: str = config.DEFAULT_IMAGE_STYLE
    model: str = config.DEFAULT_IMAGE_MODEL
    quality: str = config.DEFAULT_IMAGE_QUALITY
    n: int = 1


def get_upstream() -> OpenAIClient:  # one adapter per request, overridden in tests
    return OpenAIClient()

def get_store() -> Store:
    return store


@app.middleware("http")
async def tag_request_id(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


def session_id_of(request: Request) -> str:
    return request.headers.get("x-session-id") or "anonymous"

async def read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON.")

def error_details(err: Exception):
    if not config.DEBUG_ERRORS:
        return None
    if isinstance(err, RelayError):
        return err.details if err.details is not None else err.message
    return str(err)


@app.get("/")
def index() -> FileResponse:
    """Serve the browser UI."""
    return FileResponse(config.INDEX_FILE, media_type="text/html")

@app.get("/health")
def health():
    return {"status": "ok", "persistence": get_store().enabled}


# /api/chat answers only with these; anything else is a generic 500
CHAT_STATUSES = (400, 429, 500)

def chat_error(status_code: int, message: str, details=None) -> JSONResponse:
    if status_code not in CHAT_STATUSES:
        status_code = 500
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(content, status_code=status_code)


@router.post("/chat")
async def chat(
    request: Request,
    background_tasks: BackgroundTasks,
    upstream: OpenAIClient = Depends(get_upstream),
    store: Store = Depends(get_store),
):
    request_id = request.state.request_id
    try:
        body = await read_json(request)
        if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
            raise ValidationError("Messages array is required")
        try:
            chat_request = ChatRequest.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError("Messages array is required", details=e.errors(include_url=False, include_context=False))
        messages = [turn.model_dump() for turn in chat_request.messages]
        logger.info(f"[{request_id}] Chat request: {len(messages)} messages")

        # the sync SDK call runs in the threadpool
        response = await run_in_threadpool(upstream.chat, messages)
        logger.info(f"[{request_id}] Chat response: {len(response)} chars")
    except RelayError as e:
        logger.error(f"[{request_id}] Chat error ({e.status_code}): {e.message}")
        return chat_error(e.status_code, e.message, error_details(e))
    except Exception as e:
        logger.error(f"[{request_id}] Error in chat: {e}")
        return chat_error(500, "An error occurred while processing the chat.", error_details(e))

    session_id = session_id_of(request)
    user_turns = [m for m in messages if m["role"] == "user"]
    if user_turns:
        background_tasks.add_task(fire_and_forget, store.save_message, session_id, "user", user_turns[-1]["content"])
    background_tasks.add_task(fire_and_forget, store.save_message, session_id, "assistant", response)
    return {"response": response}


def image_error(status_code: int, message: str, details=None) -> JSONResponse:
    content = {"success": False, "error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(content, status_code=status_code, headers=config.CORS_HEADERS)

def resolve_image_options(image_request: ImageRequest) -> dict:
    choices = {
        "model": config.IMAGE_MODELS,
        "size": config.IMAGE_SIZES,
        "quality": config.IMAGE_QUALITIES,
        "style": config.IMAGE_STYLES,
    }
    options = {}
    for name, allowed in choices.items():
        value = getattr(image_request, name)
        if value not in allowed:
            raise ValidationError(f"Unsupported {name}: {value}", details={"allowed": list(allowed)})
        options[name] = value
    options["n"] = image_request.n
    return options


async def generate_image(
    request: Request,
    background_tasks: BackgroundTasks,
    upstream: OpenAIClient = Depends(get_upstream),
    store: Store = Depends(get_store),
):
    request_id = request.state.request_id
    start_time = time.monotonic()
    logger.info(f"[{request_id}] Image generation request received")
    try:
        body = await read_json(request)
        if not isinstance(body, dict):
            raise ValidationError("prompt required")
        prompt = body.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            return image_error(400, "prompt required")
        try:
            image_request = ImageRequest.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError("Invalid image options.", details=e.errors(include_url=False, include_context=False))
        options = resolve_image_options(image_request)
        logger.info(
            f"[{request_id}] Prompt: {prompt[:100]}{'...' if len(prompt) > 100 else ''}, "
            f"size: {options['size']}, style: {options['style']}"
        )

        urls = await run_in_threadpool(upstream.generate_image, prompt, **options)
    except RelayError as e:
        logger.error(f"[{request_id}] Image generation error ({e.status_code}): {e.message}")
        return image_error(e.status_code, e.message, error_details(e))
    except Exception as e:
        logger.error(f"[{request_id}] Error in generate_image: {e}")
        return image_error(500, "An error occurred while generating the image.", error_details(e))
    finally:
        logger.info(f"[{request_id}] Image generation request handled in {int((time.monotonic() - start_time) * 1000)}ms")

    session_id = session_id_of(request)
    for url in urls:
        background_tasks.add_task(
            fire_and_forget, store.save_generated_image,
            session_id, prompt.strip(), url, options["size"], options["style"],
        )
    content = {"success": True, "imageUrl": urls[0]}
    if len(urls) > 1:
        content["data"] = [{"url": url} for url in urls]
    return JSONResponse(content, headers=config.CORS_HEADERS)


def preflight():
    return Response(status_code=204, headers={**config.CORS_HEADERS, "Content-Length": "0"})


for path in ("/generate-image", "/image", "/generate"):
    router.add_api_route(path, generate_image, methods=["POST"])
    router.add_api_route(path, preflight, methods=["OPTIONS"])


@router.get("/messages")
def session_messages(request: Request, limit: int = 50, store: Store = Depends(get_store)):
    session_id = session_id_of(request)
    logger.info(f"Message history requested: session_id={session_id}")
    try:
        messages = store.get_messages(session_id, limit=limit)
    except Exception as e:
        logger.error(f"Error in session_messages: {e}")
        raise HTTPException(status_code=500, detail="Internal server error during message history retrieval.")
    return [
        {
            "id": m.id,
            "role": m.role,
            "content": m.content,
            "created_at": m.created_at
        } for m in messages
    ]

@router.get("/images")
def session_images(request: Request, limit: int = 20, store: Store = Depends(get_store)):
    session_id = session_id_of(request)
    logger.info(f"Image history requested: session_id={session_id}")
    try:
        images = store.get_generated_images(session_id, limit=limit)
    except Exception as e:
        logger.error(f"Error in session_images: {e}")
        raise HTTPException(status_code=500, detail="Internal server error during image history retrieval.")
    return [
        {
            "id": i.id,
            "prompt": i.prompt,
            "image_url": i.image_url,
            "size": i.size,
            "style": i.style,
            "created_at": i.created_at
        } for i in images
    ]


app.include_router(router, prefix="/api")
