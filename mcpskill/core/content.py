"""Rendering of tool results for the terminal.

Binary content items (images, audio, embedded blobs) are decoded and
written to an output directory; the rendered line points at the file
instead of carrying the payload.
"""

import base64
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "audio/wav": "wav",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "application/pdf": "pdf",
    "application/json": "json",
    "text/plain": "txt",
}
FALLBACK_EXTENSION = "bin"
DEFAULT_BLOB_MIME = "application/octet-stream"
ERROR_PREFIX = "[Error] "


def get_mime_extension(mime_type: Optional[str]) -> str:
    """Map a MIME type to a file extension, falling back to 'bin'."""
    return MIME_EXTENSIONS.get((mime_type or "").lower(), FALLBACK_EXTENSION)


def save_base64_file(
    data: str,
    mime_type: Optional[str],
    output_dir: Path,
    prefix: str = "output",
) -> Path:
    """
    Decode a base64 payload and write it to a fresh file.

    Files are named '<prefix>-<milliseconds>.<ext>'. If that name is taken,
    the timestamp is bumped until a free name is found.

    Args:
        data: Base64-encoded bytes
        mime_type: MIME type used to pick the extension
        output_dir: Target directory (created if missing)
        prefix: Kind of content (image, audio, resource)

    Returns:
        Path of the written file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    ext = get_mime_extension(mime_type)

    stamp = int(time.time() * 1000)
    path = output_dir / f"{prefix}-{stamp}.{ext}"
    while path.exists():
        stamp += 1
        path = output_dir / f"{prefix}-{stamp}.{ext}"

    path.write_bytes(base64.b64decode(data))
    return path


class ContentRenderer:
    """
    Renders content items of a CallToolResult, one handler per type tag.

    Unknown tags fall back to their JSON representation.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Optional[str]]] = {
            "text": self._render_text,
            "image": self._render_image,
            "audio": self._render_audio,
            "resource_link": self._render_resource_link,
            "resource": self._render_resource,
        }

    def render(self, item: Dict[str, Any]) -> Optional[str]:
        handler = self._handlers.get(item.get("type", ""), self._render_unknown)
        return handler(item)

    def _render_text(self, item: Dict[str, Any]) -> str:
        return item.get("text", "")

    def _render_image(self, item: Dict[str, Any]) -> str:
        path = save_base64_file(item["data"], item.get("mimeType"), self.output_dir, "image")
        return f"[Image saved: {path}]"

    def _render_audio(self, item: Dict[str, Any]) -> str:
        path = save_base64_file(item["data"], item.get("mimeType"), self.output_dir, "audio")
        return f"[Audio saved: {path}]"

    def _render_resource_link(self, item: Dict[str, Any]) -> str:
        name = item.get("name")
        suffix = f" ({name})" if name else ""
        return f"[Resource: {item.get('uri', '')}{suffix}]"

    def _render_resource(self, item: Dict[str, Any]) -> Optional[str]:
        resource = item.get("resource") or {}
        if resource.get("text") is not None:
            return resource["text"]
        if resource.get("blob"):
            mime_type = resource.get("mimeType") or DEFAULT_BLOB_MIME
            path = save_base64_file(resource["blob"], mime_type, self.output_dir, "resource")
            return f"[Resource saved: {path}]"
        return None

    def _render_unknown(self, item: Dict[str, Any]) -> str:
        return json.dumps(item)


def format_call_result(result: Dict[str, Any], output_dir: Path) -> str:
    """
    Render a CallToolResult payload for the terminal.

    Structured content comes first as indented JSON, followed by each
    content item. An 'isError' result is prefixed with '[Error] '.
    """
    lines: List[str] = []

    structured = result.get("structuredContent")
    if structured:
        lines.append(json.dumps(structured, indent=2))

    content = result.get("content")
    if isinstance(content, list):
        renderer = ContentRenderer(output_dir)
        for item in content:
            rendered = renderer.render(item)
            if rendered is not None:
                lines.append(rendered)

    output = "\n".join(lines)
    if result.get("isError"):
        return f"{ERROR_PREFIX}{output}"
    return output


def format_tools(result: Dict[str, Any]) -> str:
    """Render a tools listing as 'name  description' lines."""
    tools = result.get("tools")
    if not isinstance(tools, list):
        return json.dumps(result, indent=2)

    lines = []
    for tool in tools:
        name = str(tool.get("name", "")).ljust(30)
        lines.append(f"{name} {tool.get('description') or ''}".rstrip())
    return "\n".join(lines)
