"""
Attachment codec: raw captured media <-> inline data-URL payloads.
"""

import asyncio
import base64
import binascii
import io
import logging
import mimetypes
import os
import re
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import aiofiles
from PIL import Image

from ..config import settings
from ..exceptions import AttachmentDecodeError, ChatValidationError
from ..schemas.message import AttachmentPayload
from ..enums import MessageKind


logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPE_PATTERN = re.compile(r"^[\w.+-]+/[\w.+-]+$")
MIME_PARAM_PATTERN = re.compile(r"^([\w.+-]+)\s*=\s*(\"?[\w.+-]+\"?)$")

# data:<type>/<subtype>[;param=value]*;base64,<body>
# Browsers sometimes put blanks around ";" and "=" ("audio/ogg; codecs=opus").
DATA_URL_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)"
    r"(?P<params>(?:\s*;\s*[\w.+-]+\s*=\s*\"?[\w.+-]+\"?)*)"
    r"\s*;base64,(?P<body>[A-Za-z0-9+/=\s]*)$"
)


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """
    Canonical "type/subtype;param=value" form.

    Blanks around separators are dropped and malformed parameters skipped.
    Anything without a type/subtype pair becomes ``DEFAULT_MIME_TYPE``.
    """
    parts = (mime_type or "").strip().lower().split(";")
    base = parts[0].strip()
    if not MIME_TYPE_PATTERN.match(base):
        return DEFAULT_MIME_TYPE

    params = []
    for part in parts[1:]:
        match = MIME_PARAM_PATTERN.match(part.strip())
        if match:
            params.append(f"{match.group(1)}={match.group(2)}")
    return ";".join([base] + params)


def attachment_kind(mime_type: Optional[str]) -> MessageKind:
    """Infer the message kind from a MIME type prefix."""
    mime = (mime_type or "").strip().lower()
    if mime.startswith("image/"):
        return MessageKind.IMAGE
    if mime.startswith("video/"):
        return MessageKind.VIDEO
    if mime.startswith("audio/"):
        return MessageKind.AUDIO
    return MessageKind.DOCUMENT


def base_mime_type(mime_type: str) -> str:
    """Strip parameters: "audio/webm;codecs=opus" -> "audio/webm"."""
    return mime_type.split(";", 1)[0].strip().lower()


def decoded_length(body: str) -> int:
    """Byte length a base64 body decodes to, without decoding it."""
    compact = "".join(body.split())
    if len(compact) % 4 != 0:
        raise AttachmentDecodeError("Attachment payload is not valid base64.")
    if not compact:
        return 0
    padding = len(compact) - len(compact.rstrip("="))
    return (len(compact) // 4) * 3 - padding


def parse_data_url(data_url: str):
    """Split a data URL into (mime_type, body). Raises AttachmentDecodeError."""
    match = DATA_URL_PATTERN.match(data_url.strip()) if data_url else None
    if not match:
        raise AttachmentDecodeError("Attachment payload is malformed.")
    mime = normalize_mime_type(match.group("mime") + match.group("params"))
    return mime, match.group("body")


@dataclass
class PreviewHandle:
    """Local file holding decoded bytes for playback/preview."""
    id: str
    path: Path
    mime_type: str


class AttachmentCodec:
    """Encode, decode and validate inline attachments."""

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size or settings.MAX_ATTACHMENT_SIZE

    @property
    def max_size_mb(self) -> float:
        return self.max_size / (1024 * 1024)

    def _check_size(self, size: int):
        if size <= 0:
            raise ChatValidationError("Attachment is empty.")
        if size > self.max_size:
            raise ChatValidationError(f"Attachment exceeds the {self.max_size_mb:.0f} MB limit.")

    def encode(self, raw: bytes, mime_type: Optional[str], name: str) -> AttachmentPayload:
        """Build a self-describing payload from raw bytes."""
        self._check_size(len(raw))
        mime = normalize_mime_type(mime_type)
        body = base64.b64encode(raw).decode("ascii")
        return AttachmentPayload(
            name=name or "attachment",
            mime_type=mime,
            size=len(raw),
            data_url=f"data:{mime};base64,{body}",
        )

    def decode(self, attachment: AttachmentPayload) -> bytes:
        """Inverse of ``encode``; only needed for local preview/playback."""
        _, body = parse_data_url(attachment.data_url)
        try:
            raw = base64.b64decode("".join(body.split()), validate=True)
        except (binascii.Error, ValueError):
            raise AttachmentDecodeError("Attachment payload is not valid base64.")
        if len(raw) != attachment.size:
            raise AttachmentDecodeError("Attachment size does not match its payload.")
        return raw

    def validate(self, attachment: AttachmentPayload) -> AttachmentPayload:
        """
        Server side checks for a client encoded attachment.
        Format first, then the size ceiling, then payload consistency.
        The body is never decoded.
        """
        if not attachment.name.strip() or not attachment.mime_type.strip():
            raise ChatValidationError("Invalid attachment.")

        _, body = parse_data_url(attachment.data_url)
        self._check_size(attachment.size)

        if decoded_length(body) != attachment.size:
            raise ChatValidationError("Attachment size does not match its payload.")

        return attachment

    def describe(self, attachment: AttachmentPayload) -> Dict[str, Union[str, int]]:
        """Metadata for logging and previews."""
        metadata = {
            "name": attachment.name,
            "content_type": attachment.mime_type,
            "size": attachment.size,
            "kind": attachment_kind(attachment.mime_type).value,
        }

        if metadata["kind"] == MessageKind.IMAGE.value:
            try:
                img = Image.open(io.BytesIO(self.decode(attachment)))
                metadata["width"] = img.width
                metadata["height"] = img.height
            except (OSError, ValueError):
                logger.debug("Could not read image dimensions for %s", attachment.name)

        return metadata

    async def encode_file(self, path: Union[str, Path], mime_type: Optional[str] = None) -> AttachmentPayload:
        """Encode a file handed over by a capture component."""
        path = Path(path)
        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()
        if not mime_type:
            mime_type = mimetypes.guess_type(path.name)[0]
        return self.encode(raw, mime_type, path.name)

    def _check_ffmpeg_available(self) -> bool:
        """Check if ffmpeg is available."""
        try:
            result = subprocess.run(
                ["ffmpeg", "-version"],
                capture_output=True,
                timeout=5
            )
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError):
            return False

    def _transcode_audio(self, input_path: str, output_path: str) -> bool:
        """Re-encode a captured audio container to MP3."""
        try:
            result = subprocess.run(
                [
                    "ffmpeg",
                    "-i", input_path,
                    "-vn",
                    "-c:a", "libmp3lame",
                    "-q:a", "4",
                    "-y",  # Overwrite output
                    output_path
                ],
                capture_output=True,
                timeout=120
            )
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Audio transcoding failed: %s", e)
            return False

    async def ensure_playable_audio(self, attachment: AttachmentPayload) -> AttachmentPayload:
        """
        Make a voice note playable everywhere.

        Browsers record in webm/ogg containers that not every player accepts.
        One reconstruction attempt is made (MP3 via ffmpeg); if it fails the
        attachment is reported as unrecoverable.
        """
        if attachment_kind(attachment.mime_type) is not MessageKind.AUDIO:
            return attachment
        if base_mime_type(attachment.mime_type) in settings.PLAYABLE_AUDIO_TYPES:
            return attachment

        raw = self.decode(attachment)
        if not self._check_ffmpeg_available():
            raise AttachmentDecodeError("Audio format is not playable and ffmpeg is not installed.")

        suffix = mimetypes.guess_extension(base_mime_type(attachment.mime_type)) or ".bin"
        with tempfile.TemporaryDirectory() as tmp_dir:
            input_path = os.path.join(tmp_dir, f"input{suffix}")
            output_path = os.path.join(tmp_dir, "output.mp3")
            async with aiofiles.open(input_path, "wb") as f:
                await f.write(raw)

            ok = await asyncio.to_thread(self._transcode_audio, input_path, output_path)
            if not ok:
                raise AttachmentDecodeError("Audio could not be converted to a playable format.")

            async with aiofiles.open(output_path, "rb") as f:
                converted = await f.read()

        logger.info("Re-encoded %s (%s) to audio/mpeg", attachment.name, attachment.mime_type)
        return self.encode(converted, "audio/mpeg", f"{Path(attachment.name).stem}.mp3")


class PreviewRegistry:
    """
    Preview files created for local playback.

    Every handle must be revoked once its preview is superseded or the
    message is discarded; ``release_all`` is the teardown.
    """

    def __init__(self, codec: Optional[AttachmentCodec] = None, preview_dir: Optional[str] = None):
        self.codec = codec or AttachmentCodec()
        self.preview_dir = Path(preview_dir or settings.PREVIEW_DIR)
        self._handles: Dict[str, PreviewHandle] = {}

    def __len__(self):
        return len(self._handles)

    def __contains__(self, handle_id: str):
        return handle_id in self._handles

    async def create(self, attachment: AttachmentPayload) -> PreviewHandle:
        raw = self.codec.decode(attachment)
        self.preview_dir.mkdir(parents=True, exist_ok=True)

        handle_id = uuid.uuid4().hex
        ext = Path(attachment.name).suffix.lower()
        path = self.preview_dir / f"{handle_id}{ext}"
        async with aiofiles.open(path, "wb") as f:
            await f.write(raw)

        handle = PreviewHandle(id=handle_id, path=path, mime_type=attachment.mime_type)
        self._handles[handle_id] = handle
        return handle

    def revoke(self, handle: Optional[Union[PreviewHandle, str]]) -> bool:
        """Delete a preview file. Unknown or already revoked handles are ignored."""
        if handle is None:
            return False
        handle_id = handle if isinstance(handle, str) else handle.id
        entry = self._handles.pop(handle_id, None)
        if entry is None:
            return False
        if entry.path.exists():
            os.remove(entry.path)
        return True

    async def replace(self, old: Optional[Union[PreviewHandle, str]], attachment: AttachmentPayload) -> PreviewHandle:
        self.revoke(old)
        return await self.create(attachment)

    def release_all(self):
        for handle_id in list(self._handles):
            self.revoke(handle_id)
