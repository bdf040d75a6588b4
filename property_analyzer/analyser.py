"""
    Wrapper around the Anthropic Messages API that both analysis endpoints delegate to.
    The client is built per request and only when an API key is configured, so the
    service starts and serves placeholder results without any analyser set up.
"""
import base64
import io
import logging
import os
from dataclasses import dataclass
from typing import Optional

import anthropic
from fastapi.concurrency import run_in_threadpool
from PIL import Image, UnidentifiedImageError


# ----- constants -----
DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MEDIA_TYPE = "image/jpeg"

# image types accepted by the Messages API
SUPPORTED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]

PIL_FORMAT_TO_MEDIA_TYPE = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

STUB_NOTE = "AI analyser not configured (missing ANTHROPIC_API_KEY). Placeholder result for testing."

FLOOR_PLAN_PROMPT = (
    "Analyze this floor plan image in detail. Please identify all rooms, their dimensions (in feet), "
    "area (in square feet), and any notable features. If this appears to be a screenshot or not an actual "
    'floor plan, respond with a JSON object: {"error": "The provided image does not appear to be a floor plan. '
    'Please upload an architectural floor plan image."}. Otherwise format the response as JSON with the '
    "following structure: { rooms: [{ name: string, dimensions: string, area: number, features: string[] }], "
    "totalArea: number, notes: string }. Don't include any explanatory text, just the JSON."
)

CHATTEL_PROMPT = (
    "Please analyze this image and identify all chattels and furniture items. For each item, provide its "
    "name and estimate its replacement cost in GBP. Focus on significant items that would be considered in "
    "a property inventory. Format your response as a JSON array of objects, where each object has 'name', "
    "'replacementCost' (in GBP), and 'confidence' (0-1) properties."
)


@dataclass(frozen=True)
class AnalysisRequest:
    """
    One uploaded image, already base64 encoded, together with the instruction sent alongside it.
    """
    image_data: str
    media_type: str
    prompt: str

    @classmethod
    def from_bytes(cls, contents: bytes, media_type: str, prompt: str) -> "AnalysisRequest":
        return cls(
            image_data=base64.b64encode(contents).decode("ascii"),
            media_type=media_type,
            prompt=prompt,
        )

    def to_message(self) -> dict:
        return {
            "role": "user",
            "content": [
                {"type": "text", "text": self.prompt},
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": self.media_type,
                        "data": self.image_data,
                    },
                },
            ],
        }


# ----- configuration -----
def get_api_key() -> Optional[str]:
    return os.getenv("ANTHROPIC_API_KEY") or None


def is_configured() -> bool:
    return get_api_key() is not None


def get_model() -> str:
    return os.getenv("CLAUDE_MODEL", DEFAULT_MODEL)


def get_max_tokens() -> int:
    return int(os.getenv("CLAUDE_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)))


# ----- helper functions -----
def get_client(timeout: Optional[float] = None):
    """
    Builds an Anthropic client for a single request. Returns None when no API key is set.
    Retries are disabled so a failing call surfaces straight away.
    """
    api_key = get_api_key()
    if not api_key:
        return None
    options = {"api_key": api_key, "max_retries": 0}
    if timeout is not None:
        options["timeout"] = timeout
    return anthropic.Anthropic(**options)


def resolve_media_type(declared: Optional[str], contents: bytes) -> str:
    """
    Picks the media type to declare for an upload. A supported browser-provided type wins;
    otherwise the bytes are sniffed with Pillow and anything unrecognised falls back to JPEG.
    """
    if declared in SUPPORTED_IMAGE_TYPES:
        return declared
    try:
        with Image.open(io.BytesIO(contents)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        logging.warning(f"ANALYSER - Could not identify upload declared as '{declared}', using {DEFAULT_MEDIA_TYPE}")
        return DEFAULT_MEDIA_TYPE
    return PIL_FORMAT_TO_MEDIA_TYPE.get(image_format, DEFAULT_MEDIA_TYPE)


def first_text_block(message) -> Optional[str]:
    """
    Returns the text of the first content block, or None when that block is not text.
    """
    if not message.content:
        return None
    first = message.content[0]
    if first.type != "text":
        return None
    return first.text


def send_analysis_request(client, request: AnalysisRequest):
    return client.messages.create(
        model=get_model(),
        max_tokens=get_max_tokens(),
        messages=[request.to_message()],
    )


async def analyse(request: AnalysisRequest, timeout: Optional[float] = None):
    """
    Sends an analysis request to the analyser and returns the raw message.
    The SDK call is blocking, so it runs in the threadpool.
    """
    client = get_client(timeout=timeout)
    if client is None:
        raise RuntimeError("AI analyser is not configured")
    logging.info(f"ANALYSER - Sending {request.media_type} image to {get_model()}")
    return await run_in_threadpool(send_analysis_request, client, request)
