"""Validation of multipart image uploads.

The body is parsed while it streams in, so an oversized image is rejected as
soon as it crosses the ceiling instead of after the whole request arrived.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Request
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from src.backend.errors import MalformedUpload, PayloadTooLarge, TooManyOrMissingFields
from src.config.settings import IMAGE_FIELD_NAME, MAX_UPLOAD_BYTES, MAX_REQUEST_BYTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    """Bytes of the single accepted image file."""
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class _Part:
    headers: dict = field(default_factory=dict)
    name: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    chunks: List[bytes] = field(default_factory=list)
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.filename is not None


class _ImageCollector:
    """python-multipart callbacks that keep the image part and check it as it grows.

    Callbacks only record state; ``check`` raises after each parser write.
    """

    def __init__(self, field_name: str, max_bytes: int):
        self.field_name = field_name
        self.max_bytes = max_bytes
        self.image: Optional[_Part] = None
        self.image_count = 0
        self.unexpected_field: Optional[str] = None
        self._part: Optional[_Part] = None
        self._header_field = b""
        self._header_value = b""

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self) -> None:
        self._part = _Part()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._part.headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        part = self._part
        _, options = parse_options_header(part.headers.get(b"content-disposition", b""))
        if b"name" in options:
            part.name = options[b"name"].decode("latin-1")
        if b"filename" in options:
            part.filename = options[b"filename"].decode("utf-8", errors="replace")
        if b"content-type" in part.headers:
            part.content_type = part.headers[b"content-type"].decode("latin-1")

        if not part.is_file:
            return
        if part.name != self.field_name:
            self.unexpected_field = self.unexpected_field or part.name
            return
        self.image_count += 1
        if self.image is None:
            self.image = part

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        part = self._part
        if part is not self.image:
            # Text fields and rejected files are never kept
            return
        part.size += end - start
        if part.size <= self.max_bytes:
            part.chunks.append(data[start:end])

    def check(self) -> None:
        if self.unexpected_field is not None:
            raise MalformedUpload("Unexpected field", reason=f"unexpected file field {self.unexpected_field!r}")
        if self.image_count > 1:
            raise TooManyOrMissingFields("Only one image file is allowed", reason=f"{self.image_count} files")
        if self.image is not None and self.image.size > self.max_bytes:
            raise PayloadTooLarge(self.max_bytes, reason=f"file exceeds {self.max_bytes} bytes")


class UploadValidator:
    """Accepts exactly one file under ``field_name``, no larger than ``max_bytes``.

    ``max_request_bytes`` bounds the whole body (file plus any other fields),
    so text fields cannot make the server read without limit either.
    """

    def __init__(
        self,
        field_name: str = IMAGE_FIELD_NAME,
        max_bytes: int = MAX_UPLOAD_BYTES,
        max_request_bytes: int = MAX_REQUEST_BYTES,
    ):
        self.field_name = field_name
        self.max_bytes = max_bytes
        self.max_request_bytes = max(max_request_bytes, max_bytes)

    def check_declared_length(self, content_length: Optional[str]) -> None:
        """Reject a body above the request cap before reading any of it."""
        if content_length is None:
            return
        try:
            declared = int(content_length)
        except ValueError:
            raise MalformedUpload("Invalid Content-Length header", reason=content_length)
        if declared > self.max_request_bytes:
            raise PayloadTooLarge(self.max_bytes, reason=f"declared content length {declared}")

    async def validate(self, request: Request) -> Upload:
        """Stream the multipart body and return the single image upload.

        Raises:
            PayloadTooLarge: If the file or the whole body exceeds its ceiling
            TooManyOrMissingFields: If there is not exactly one image field
            MalformedUpload: For any other unusable body
        """
        self.check_declared_length(request.headers.get("content-length"))

        content_type, params = parse_options_header(request.headers.get("content-type", ""))
        if content_type != b"multipart/form-data":
            raise TooManyOrMissingFields("No image file provided", reason=f"content type {content_type!r}")
        boundary = params.get(b"boundary")
        if not boundary:
            raise MalformedUpload("Missing boundary in multipart.")

        collector = _ImageCollector(self.field_name, self.max_bytes)
        parser = MultipartParser(boundary, collector.callbacks())

        received = 0
        try:
            async for chunk in request.stream():
                received += len(chunk)
                if received > self.max_request_bytes:
                    raise PayloadTooLarge(self.max_bytes, reason=f"body exceeds {self.max_request_bytes} bytes")
                parser.write(chunk)
                collector.check()
            parser.finalize()
        except MultipartParseError as e:
            raise MalformedUpload(str(e) or "Malformed multipart body", reason=str(e))

        collector.check()
        if collector.image is None:
            raise TooManyOrMissingFields("No image file provided")

        image = collector.image
        return Upload(
            data=b"".join(image.chunks),
            filename=image.filename,
            content_type=image.content_type,
        )
