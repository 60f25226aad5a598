"""
Client metadata extracted from incoming requests: IP address and the
browser / device / OS parsed from the user agent.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from user_agents import parse as parse_user_agent


@dataclass
class ClientInfo:
    ip: str
    user_agent: str
    browser: str
    device: str
    os: str


def get_client_ip(request: Request) -> str:
    """Client IP, honouring the usual proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # May hold a chain of proxies; the first entry is the client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip") or request.headers.get("cf-connecting-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "0.0.0.0"


def describe_user_agent(user_agent: Optional[str]) -> dict:
    """Browser, device type and OS for a raw user-agent string."""
    ua = parse_user_agent(user_agent or "")

    if ua.is_mobile:
        device = "mobile"
    elif ua.is_tablet:
        device = "tablet"
    elif ua.is_bot:
        device = "bot"
    else:
        device = "desktop"

    return {
        "browser": f"{ua.browser.family} {ua.browser.version_string}".strip(),
        "device": device,
        "os": f"{ua.os.family} {ua.os.version_string}".strip(),
    }


def get_client_info(request: Request) -> ClientInfo:
    """Extract client info from request."""
    raw_user_agent = request.headers.get("user-agent") or ""
    parsed = describe_user_agent(raw_user_agent)
    return ClientInfo(
        ip=get_client_ip(request),
        user_agent=raw_user_agent,
        browser=parsed["browser"],
        device=parsed["device"],
        os=parsed["os"],
    )
