"""Codificación del body para el envío.

Cada variante de body se convierte en los bytes exactos (o partes multipart)
que salen por la red, así Digest `auth-int` hashea la misma entidad que ve el servidor.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

from core.domain.models import FileBody, FormDataBody, RequestBody

MultipartFiles = list[tuple[str, tuple[str | None, bytes, str | None]]]


@dataclass
class EncodedBody:
    content: bytes | None = None
    files: MultipartFiles | None = None
    content_type: str | None = None
    drop_content_type: bool = False


def _b64decode(data: str, what: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{what} is not valid base64") from exc


def encode_body(body: RequestBody) -> EncodedBody:
    if body is None:
        return EncodedBody()
    if isinstance(body, bytes):
        return EncodedBody(content=body)
    if isinstance(body, str):
        return EncodedBody(content=body.encode("utf-8"))
    if isinstance(body, FileBody):
        return EncodedBody(
            content=_b64decode(body.data, f"file body {body.file_name!r}"),
            content_type=body.content_type,
        )
    if isinstance(body, FormDataBody):
        files: MultipartFiles = []
        for entry in body.entries:
            if entry.field_type == "file":
                files.append(
                    (
                        entry.key,
                        (
                            entry.file_name or "file",
                            _b64decode(entry.value, f"form file {entry.key!r}"),
                            entry.content_type or "application/octet-stream",
                        ),
                    )
                )
            else:
                files.append((entry.key, (None, entry.value.encode("utf-8"), None)))
        # El boundary multipart lo genera el transporte.
        return EncodedBody(files=files, drop_content_type=True)
    return EncodedBody(
        content=json.dumps(body, ensure_ascii=False).encode("utf-8"),
        content_type="application/json",
    )


def _find_header(headers: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key in headers:
        if key.lower() == lowered:
            return key
    return None


def prepare_body(body: RequestBody, headers: dict[str, str]) -> tuple[dict[str, Any], dict[str, str]]:
    """Devuelve los kwargs de httpx para `body` y los headers ajustados."""

    encoded = encode_body(body)
    headers = dict(headers)
    content_type_key = _find_header(headers, "content-type")

    if encoded.drop_content_type and content_type_key is not None:
        del headers[content_type_key]
    elif encoded.content_type and content_type_key is None:
        headers["Content-Type"] = encoded.content_type

    kwargs: dict[str, Any] = {}
    if encoded.files is not None:
        kwargs["files"] = encoded.files
    elif encoded.content is not None:
        kwargs["content"] = encoded.content
    return kwargs, headers


def entity_bytes(body: RequestBody) -> bytes:
    """Bytes que hashea Digest `qop=auth-int` (vacío para bodies multipart)."""

    return encode_body(body).content or b""
