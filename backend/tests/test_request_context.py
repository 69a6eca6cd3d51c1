from types import SimpleNamespace

from authsessions.services.request_context import (
    RequestContext,
    extract_request_context,
    get_client_ip,
    parse_browser,
    parse_device,
)

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WIN = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _request(headers=None, host="127.0.0.1"):
    return SimpleNamespace(
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client=SimpleNamespace(host=host) if host else None,
    )


def test_browser_detection_order():
    assert parse_browser(CHROME_MAC) == "Chrome"
    assert parse_browser(EDGE_WIN) == "Edge"
    assert parse_browser(SAFARI_IPHONE) == "Safari"
    assert parse_browser(None) == "Unknown"


def test_device_label_combines_browser_and_os():
    assert parse_device(CHROME_MAC) == "Chrome on macOS"
    assert parse_device(EDGE_WIN) == "Edge on Windows 10"
    assert parse_device(SAFARI_IPHONE) == "Safari on iPhone"
    assert parse_device("") == "Unknown Device"


def test_forwarded_for_takes_first_hop():
    request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "10.9.9.9"})
    assert get_client_ip(request) == "203.0.113.5"


def test_real_ip_then_peer_address():
    assert get_client_ip(_request({"X-Real-IP": "198.51.100.2"})) == "198.51.100.2"
    assert get_client_ip(_request()) == "127.0.0.1"
    assert get_client_ip(_request(host=None)) is None


def test_extract_request_context():
    context = extract_request_context(_request({"User-Agent": CHROME_MAC}, host="192.0.2.1"))
    assert context == RequestContext(
        ip_address="192.0.2.1",
        user_agent=CHROME_MAC,
        device="Chrome on macOS",
        browser="Chrome",
    )


def test_long_user_agent_is_truncated():
    context = RequestContext.from_user_agent("x" * 2000)
    assert len(context.user_agent) == 512
