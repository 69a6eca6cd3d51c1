"""Client metadata extracted from inbound requests for session display."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

UNKNOWN_BROWSER = "Unknown"
UNKNOWN_DEVICE = "Unknown Device"

_USER_AGENT_MAX = 512


@dataclass(frozen=True)
class RequestContext:
    """Device, browser and address of the client making a request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device: str = UNKNOWN_DEVICE
    browser: str = UNKNOWN_BROWSER

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str], ip_address: Optional[str] = None) -> "RequestContext":
        if user_agent:
            user_agent = user_agent[:_USER_AGENT_MAX]
        return cls(
            ip_address=ip_address,
            user_agent=user_agent,
            device=parse_device(user_agent),
            browser=parse_browser(user_agent),
        )


def parse_browser(user_agent: Optional[str]) -> str:
    if not user_agent:
        return UNKNOWN_BROWSER

    # Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari
    if "Firefox/" in user_agent:
        return "Firefox"
    if "Edg/" in user_agent:
        return "Edge"
    if "OPR/" in user_agent or "Opera/" in user_agent:
        return "Opera"
    if "Chrome/" in user_agent:
        return "Chrome"
    if "Safari/" in user_agent:
        return "Safari"
    if "MSIE" in user_agent or "Trident/" in user_agent:
        return "Internet Explorer"
    return UNKNOWN_BROWSER


def parse_os(user_agent: str) -> str:
    if "Windows NT 10" in user_agent:
        return "Windows 10"
    if "Windows NT 6.3" in user_agent:
        return "Windows 8.1"
    if "Windows NT 6.2" in user_agent:
        return "Windows 8"
    if "Windows NT 6.1" in user_agent:
        return "Windows 7"
    if "Windows" in user_agent:
        return "Windows"
    # iOS user agents also contain "Mac OS X"
    if "iPhone" in user_agent:
        return "iPhone"
    if "iPad" in user_agent:
        return "iPad"
    if "Mac OS X" in user_agent:
        return "macOS"
    if "Android" in user_agent:
        return "Android"
    if "Linux" in user_agent:
        return "Linux"
    return "Unknown"


def parse_device(user_agent: Optional[str]) -> str:
    """Human readable "<browser> on <os>" label"""
    if not user_agent:
        return UNKNOWN_DEVICE
    return f"{parse_browser(user_agent)} on {parse_os(user_agent)}"


def get_client_ip(request: Request) -> Optional[str]:
    """Best-effort client IP: X-Forwarded-For, then X-Real-IP, then the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None


def extract_request_context(request: Request) -> RequestContext:
    return RequestContext.from_user_agent(
        request.headers.get("user-agent"),
        ip_address=get_client_ip(request),
    )
