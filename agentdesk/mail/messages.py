"""Helpers for Gmail message payloads."""

import base64
from email.message import EmailMessage
from typing import Dict, Any


def extract_headers(message: Dict[str, Any]) -> Dict[str, str]:
    """Lower-cased header name -> value."""
    headers = (message.get("payload") or {}).get("headers") or []
    return {h["name"].lower(): h.get("value", "") for h in headers if h.get("name")}


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _part_text(part: Dict[str, Any]) -> str:
    body = part.get("body") or {}
    if part.get("mimeType") == "text/plain" and body.get("data"):
        return _decode(body["data"])
    if part.get("parts"):
        return "\n".join(t for t in (_part_text(p) for p in part["parts"]) if t)
    return ""


def extract_text(message: Dict[str, Any]) -> str:
    """Plain-text body of a full-format message, or "" if none."""
    payload = message.get("payload") or {}
    body = payload.get("body") or {}
    if body.get("data"):
        return _decode(body["data"])
    if payload.get("parts"):
        return _part_text(payload["parts"][0])
    return ""


def build_raw_message(sender: str, to: str, subject: str, body: str) -> str:
    """RFC 2822 message, base64url encoded without padding."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
