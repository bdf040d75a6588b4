"""
    FastAPI application for the property analysis suite. A user uploads a floor plan or a photo of a room,
    the image is forwarded to the AI analyser and the structured JSON it returns is handed back to the page.
"""
from fastapi import FastAPI, Request, File, UploadFile
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import anthropic
import logging
import os

from . import analyser
from .analyser import AnalysisRequest, SUPPORTED_IMAGE_TYPES, STUB_NOTE
from .auth import API_PREFIX, basic_auth_gate
from .baseModels import ChattelResult, ErrorResponse, FloorPlanResult, HealthResponse
from .parsing import loads_strict, parse_chattel_items

# importing dotenv
from dotenv import load_dotenv
load_dotenv()


# ----- constants -----
BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIRECTORY = BASE_DIR / "templates"
STATIC_DIRECTORY = BASE_DIR / "static"
DEFAULT_FLOOR_PLAN_TIMEOUT = 60.0

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Set up Logging ---
logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()            # Log to the console
    ]
)


# ----- startup function -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Code to run on startup
    if analyser.is_configured():
        logging.info(f" ANALYSER - Using model {analyser.get_model()}")
    else:
        logging.warning(" ANALYSER - ANTHROPIC_API_KEY is not set, analysis endpoints will return placeholder results")
    yield
    # Code to run on shutdown (optional)
    logging.info("Server shutting down")

app = FastAPI(
    title="Property analysis suite",
    description="An API that analyses uploaded floor plans and room photos, returning the rooms or the chattels with their replacement costs",
    lifespan=lifespan
)

app.middleware("http")(basic_auth_gate)
app.mount("/static", StaticFiles(directory=str(STATIC_DIRECTORY)), name="static")
templates = Jinja2Templates(directory=str(TEMPLATES_DIRECTORY))


# ----- helper functions -----
def error_response(status_code: int, message: str, raw_preview: Optional[str] = None) -> JSONResponse:
    """
    Builds the JSON error body shared by every API route
    """
    body = ErrorResponse(error=message, rawResponsePreview=raw_preview)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))

def get_floor_plan_timeout() -> float:
    return float(os.getenv("FLOOR_PLAN_TIMEOUT_SECONDS", str(DEFAULT_FLOOR_PLAN_TIMEOUT)))


# ----- exception handlers -----
@app.exception_handler(StarletteHTTPException)
async def api_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Keeps error bodies under /api/ in the {"error": ...} shape the pages expect
    """
    if request.url.path.startswith(API_PREFIX):
        return error_response(exc.status_code, str(exc.detail))
    return await http_exception_handler(request, exc)

@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    if request.url.path.startswith(API_PREFIX):
        logging.error(f"Rejected malformed request to '{request.url.path}': {exc.errors()}")
        return error_response(400, "Invalid request: expected a multipart form with an 'image' file")
    return await request_validation_exception_handler(request, exc)


# ----- Pages -----

@app.get('/', include_in_schema=False)
def home(request: Request):
    return templates.TemplateResponse(request, "index.html")

@app.get('/analyzer', include_in_schema=False)
def floor_plan_page(request: Request):
    return templates.TemplateResponse(
        request, "analyzer.html", {"supported_image_types": SUPPORTED_IMAGE_TYPES}
    )

@app.get('/chattel-analyzer', include_in_schema=False)
def chattel_page(request: Request):
    return templates.TemplateResponse(request, "chattel_analyzer.html")


# ----- API Methods -----

@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", analyser_configured=analyser.is_configured())


@app.post(
    "/api/analyze-floor-plan",
    response_model=FloorPlanResult,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def analyze_floor_plan(image: Optional[UploadFile] = File(None)):
    """
    This endpoint accepts a floor plan image, verifies its type, sends it to the analyser
    and returns the rooms it found. Well-formed analyser JSON is returned untouched.
    """
    logging.info("FLOOR PLAN - Attempting to analyze a floor plan.")
    try:
        # 1. --- Verify the upload ---
        if image is None:
            logging.error("FLOOR PLAN - No image was provided!")
            return error_response(400, "No image provided")

        if image.content_type not in SUPPORTED_IMAGE_TYPES:
            logging.error(f"FLOOR PLAN - Unsupported image type '{image.content_type}'")
            return error_response(
                400, f"Invalid file type. Supported formats are: {', '.join(SUPPORTED_IMAGE_TYPES)}"
            )

        contents = await image.read()
        request = AnalysisRequest.from_bytes(contents, image.content_type, analyser.FLOOR_PLAN_PROMPT)

        # 2. --- Placeholder result when no analyser is configured ---
        if not analyser.is_configured():
            logging.info("FLOOR PLAN - Analyser not configured, returning placeholder result.")
            stub = FloorPlanResult(rooms=[], totalArea=0, notes=STUB_NOTE)
            return JSONResponse(content=stub.model_dump(exclude_none=True))

        # 3. --- Call the analyser ---
        try:
            message = await analyser.analyse(request, timeout=get_floor_plan_timeout())
        except anthropic.APIError as e:
            logging.exception("FLOOR PLAN - Analyser call failed:")
            return error_response(500, str(e) or "Error communicating with Claude API")

        response_text = analyser.first_text_block(message) or ""
        if not response_text:
            logging.error("FLOOR PLAN - Analyser returned an empty response.")
            return error_response(500, "Empty response from Claude API")

        logging.info(f"FLOOR PLAN - Analyser response (first 100 chars): {response_text[:100]}")

        # 4. --- Parse the reply ---
        try:
            result = loads_strict(response_text)
        except ValueError:
            logging.exception("FLOOR PLAN - Failed to parse analyser response:")
            logging.error(f"FLOOR PLAN - Raw response content: {response_text[:200]}")
            return error_response(500, "Failed to parse Claude API response", raw_preview=response_text[:100])

        return JSONResponse(content=result)

    except Exception as e:
        logging.exception("FLOOR PLAN - Was not able to analyze the floor plan due to the following exception: ")
        return error_response(500, str(e) or "An error occurred while analyzing the floor plan")


@app.post(
    "/api/analyze-chattels",
    response_model=ChattelResult,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def analyze_chattels(image: Optional[UploadFile] = File(None)):
    """
    This endpoint accepts a photo of a room and returns the chattels the analyser identified,
    each with an estimated replacement cost in GBP.
    """
    logging.info("CHATTELS - Attempting to get the chattels in an image.")
    try:
        if image is None:
            logging.error("CHATTELS - No image was provided!")
            return error_response(400, "No image provided")

        # exit before reading the upload when there is no analyser to send it to
        if not analyser.is_configured():
            logging.info("CHATTELS - Analyser not configured, returning placeholder result.")
            stub = ChattelResult(items=[], notes=STUB_NOTE)
            return JSONResponse(content=stub.model_dump(exclude_none=True))

        contents = await image.read()
        media_type = analyser.resolve_media_type(image.content_type, contents)
        request = AnalysisRequest.from_bytes(contents, media_type, analyser.CHATTEL_PROMPT)

        message = await analyser.analyse(request)
        response_text = analyser.first_text_block(message)
        if response_text is None:
            raise ValueError("Unexpected response type from Claude")

        items = parse_chattel_items(response_text)
        logging.info(f"CHATTELS - Found {len(items)} well-formed items.")
        return JSONResponse(content=ChattelResult(items=items).model_dump(exclude_none=True))

    except Exception:
        logging.exception("CHATTELS - Error analyzing image:")
        return error_response(500, "Failed to analyze image")
