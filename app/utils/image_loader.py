import base64
import io
from typing import Optional

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from app.models.analysis_result import EncodedImage
from app.services.errors import ImageEncodingError

FALLBACK_MIME_TYPE = "application/octet-stream"


def sniff_mime_type(data: bytes) -> str:
    """
    Guess the media type from the image header with Pillow.
    The image is only identified, never decoded or converted.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format, FALLBACK_MIME_TYPE)
    except (UnidentifiedImageError, OSError):
        return FALLBACK_MIME_TYPE


def resolve_mime_type(data: bytes, declared: Optional[str]) -> str:
    if declared and declared.startswith("image/"):
        return declared
    return sniff_mime_type(data)


def encode_image(data: bytes, mime_type: Optional[str] = None) -> EncodedImage:
    """
    Turn raw image bytes into a transport-ready payload (base64 text + media type).
    Bytes are passed through unmodified regardless of size.
    """
    return EncodedImage(
        data=base64.b64encode(data).decode("utf-8"),
        mime_type=resolve_mime_type(data, mime_type),
    )


async def read_upload(upload: UploadFile) -> bytes:
    try:
        return await upload.read()
    except Exception as e:
        raise ImageEncodingError(f"could not read {upload.filename!r}: {e}") from e


async def encode_upload(upload: UploadFile) -> EncodedImage:
    """
    Read a FastAPI UploadFile and encode it.
    """
    contents = await read_upload(upload)
    return encode_image(contents, upload.content_type)
