"""Response body decoding by response type."""

from __future__ import annotations

import json
from email.parser import BytesParser
from email.policy import HTTP
from typing import Any
from urllib.parse import parse_qsl

import httpx
from pydantic import TypeAdapter, ValidationError

from .exceptions import CiosDecodeError, CiosUnsupportedError
from .models import Blob, FormData, ResponseType


def error_body(response: httpx.Response) -> object:
    """Best-effort diagnostic body for a rejected response.

    Structured JSON when the content type says so, else the text, else the
    reason phrase.
    """
    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    try:
        text = response.text
    except (LookupError, ValueError):
        text = ""
    return text or response.reason_phrase


def decode_body(
    response: httpx.Response,
    response_type: ResponseType,
    *,
    supports_form_data: bool = True,
    response_model: Any = None,
) -> Any:
    if response_type is ResponseType.TEXT:
        return response.text
    if response_type is ResponseType.BLOB:
        return Blob(content=response.content, content_type=response.headers.get("content-type"))
    if response_type is ResponseType.ARRAY_BUFFER:
        return response.content
    if response_type is ResponseType.FORM_DATA:
        if not supports_form_data:
            raise CiosUnsupportedError(
                "form_data responseType is not supported by the low-level transport",
                status_code=response.status_code,
                request=response.request,
                response=response,
            )
        return _decode_form_data(response)

    data = _decode_json(response)
    if response_model is None:
        return data
    try:
        return TypeAdapter(response_model).validate_python(data)
    except ValidationError as exc:
        name = getattr(response_model, "__name__", repr(response_model))
        raise CiosDecodeError(
            f"Response does not match {name}: {exc.error_count()} validation error(s)",
            status_code=response.status_code,
            body=data,
            request=response.request,
            response=response,
            cause=exc,
        ) from exc


def _decode_json(response: httpx.Response) -> Any:
    text = response.text
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise CiosDecodeError(
            f"Failed to parse JSON response: {exc}",
            status_code=response.status_code,
            body=text,
            request=response.request,
            response=response,
            cause=exc,
        ) from exc


def _decode_form_data(response: httpx.Response) -> FormData:
    content_type = response.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/x-www-form-urlencoded":
        return FormData(fields=parse_qsl(response.text, keep_blank_values=True))
    if media_type == "multipart/form-data":
        return _decode_multipart(content_type, response)
    raise CiosDecodeError(
        f"Cannot decode form data from content type {content_type or '<missing>'!r}",
        status_code=response.status_code,
        body=response.text,
        request=response.request,
        response=response,
    )


def _decode_multipart(content_type: str, response: httpx.Response) -> FormData:
    head = f"Content-Type: {content_type}\r\n\r\n".encode("latin-1")
    message = BytesParser(policy=HTTP).parsebytes(head + response.content)
    if not message.is_multipart():
        raise CiosDecodeError(
            "Malformed multipart body",
            status_code=response.status_code,
            request=response.request,
            response=response,
        )
    form = FormData()
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            continue
        payload = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        if filename is None and part.get_content_maintype() == "text":
            charset = part.get_content_charset() or "utf-8"
            form.append(str(name), payload.decode(charset, errors="replace"))
        else:
            form.append(
                str(name),
                Blob(content=payload, content_type=part.get_content_type(), filename=filename),
            )
    return form
