import asyncio
import base64
import hashlib
import hmac
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import List, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from cryptorg.client import (
    ConfigurationError,
    Credentials,
    CryptorgClient,
    HttpMethod,
    TransportError,
    UnsupportedMethodError,
    current_nonce,
    generate_signature,
)

NONCE = 1700000000000
GOLDEN_BOT_INFO = "18541cedb5916a3ad812349e27d93305ea5a7601801732d1c49c1accc0c77fd8"
GOLDEN_BOT_ALL = "b888ad07b198b0d60c392b39522486b7ef7e634dc0ab560f7bba2e11716c1328"


def _response(text="{}", status_code=200):
    resp = MagicMock()
    resp.text = text
    resp.status_code = status_code
    resp.content = text.encode("utf-8")
    return resp


@pytest.fixture
def client():
    c = CryptorgClient(Credentials("key-123", "shh"), base_url="https://api.example.test/")
    yield c
    c.close()


@pytest.fixture
def http(client):
    with patch.object(client._session, "request", return_value=_response()) as mock_request:
        yield mock_request


# ── signing ────────────────────────────────────────────────────────────────


def test_signature_matches_golden_fixture():
    assert generate_signature("shh", "bot/info", "botId=42", NONCE) == GOLDEN_BOT_INFO


def test_signature_matches_reference_construction():
    encoded = base64.b64encode(b"deal/info/1700000000000/dealId=7")
    expected = hmac.new(b"shh", encoded, hashlib.sha256).hexdigest()
    assert generate_signature("shh", "deal/info", "dealId=7", NONCE) == expected


def test_signature_is_deterministic():
    first = generate_signature("shh", "bot/info", "botId=42", NONCE)
    assert first == generate_signature("shh", "bot/info", "botId=42", NONCE)
    assert first == first.lower()
    assert len(first) == 64


def test_none_query_signs_as_empty_string():
    assert generate_signature("shh", "bot/all", None, NONCE) == GOLDEN_BOT_ALL
    assert generate_signature("shh", "bot/all", "", NONCE) == GOLDEN_BOT_ALL


@pytest.mark.parametrize(
    "args",
    [
        ("other", "bot/info", "botId=42", NONCE),
        ("shh", "bot/delete", "botId=42", NONCE),
        ("shh", "bot/info", "botId=43", NONCE),
        ("shh", "bot/info", "botId=42", NONCE + 1),
    ],
)
def test_changing_any_input_changes_signature(args):
    assert generate_signature(*args) != GOLDEN_BOT_INFO


def test_signature_rejects_missing_secret():
    with pytest.raises(ConfigurationError):
        generate_signature("", "bot/info", "botId=42", NONCE)


@pytest.mark.parametrize("path", ["", "/bot/info"])
def test_signature_rejects_bad_path(path):
    with pytest.raises(ValueError, match="Invalid path"):
        generate_signature("shh", path, None, NONCE)


@pytest.mark.parametrize("nonce", [0, -5, True, "1700000000000"])
def test_signature_rejects_bad_nonce(nonce):
    with pytest.raises(ValueError, match="Nonce"):
        generate_signature("shh", "bot/info", None, nonce)


def test_client_sign_uses_its_own_secret(client):
    assert client.sign("bot/info", "botId=42", NONCE) == GOLDEN_BOT_INFO


# ── credentials ────────────────────────────────────────────────────────────


@pytest.mark.parametrize("key, secret", [("", "shh"), ("key", ""), ("key", None), ("   ", "shh")])
def test_credentials_reject_empty_values(key, secret):
    with pytest.raises(ConfigurationError):
        Credentials(key, secret)


def test_credentials_repr_hides_secret():
    assert "shh" not in repr(Credentials("key-123", "shh"))


def test_credentials_are_immutable():
    creds = Credentials("key-123", "shh")
    with pytest.raises(AttributeError):
        creds.api_secret = "other"


def test_credentials_from_env(monkeypatch):
    monkeypatch.setenv("CRYPTORG_API_KEY", "env-key")
    monkeypatch.setenv("CRYPTORG_API_SECRET", "env-secret")
    creds = Credentials.from_env()
    assert creds.api_key == "env-key"
    assert creds.api_secret == "env-secret"


def test_credentials_from_env_missing(monkeypatch):
    monkeypatch.delenv("CRYPTORG_API_KEY", raising=False)
    monkeypatch.setenv("CRYPTORG_API_SECRET", "env-secret")
    with pytest.raises(ConfigurationError, match="CRYPTORG_API_KEY"):
        Credentials.from_env()


def test_client_requires_credentials_object():
    with pytest.raises(ConfigurationError):
        CryptorgClient(("key", "secret"))


def test_from_keys_fails_fast_without_secret():
    with pytest.raises(ConfigurationError):
        CryptorgClient.from_keys("key", "")


# ── dispatch ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_without_query_uses_trailing_question_mark(client, http):
    with patch("cryptorg.client.current_nonce", return_value=NONCE):
        body = await client.send("GET", "bot/all")

    assert body == "{}"
    method, url = http.call_args.args
    kwargs = http.call_args.kwargs
    assert method == "GET"
    assert url == "https://api.example.test/bot/all?"
    assert "data" not in kwargs
    assert kwargs["headers"] == {
        "CTG-API-SIGNATURE": GOLDEN_BOT_ALL,
        "CTG-API-KEY": "key-123",
        "CTG-API-NONCE": str(NONCE),
    }


@pytest.mark.asyncio
async def test_get_with_query(client, http):
    with patch("cryptorg.client.current_nonce", return_value=NONCE):
        await client.send(HttpMethod.GET, "bot/info", "botId=42")

    _, url = http.call_args.args
    headers = http.call_args.kwargs["headers"]
    assert url == "https://api.example.test/bot/info?botId=42"
    assert headers["CTG-API-SIGNATURE"] == GOLDEN_BOT_INFO
    assert headers["CTG-API-NONCE"] == "1700000000000"


@pytest.mark.asyncio
async def test_post_sends_body_as_form(client, http):
    await client.send("POST", "bot/create", "pair=BTC-USDT&exchange=binance", {"volume": "100"})

    method, url = http.call_args.args
    kwargs = http.call_args.kwargs
    assert method == "POST"
    assert url == "https://api.example.test/bot/create?pair=BTC-USDT&exchange=binance"
    assert kwargs["data"] == {"volume": "100"}
    assert "volume" not in url


@pytest.mark.asyncio
async def test_post_without_body_sends_empty_form(client, http):
    await client.send("POST", "analytics/get", "start=a&end=b")
    assert http.call_args.kwargs["data"] == {}


@pytest.mark.asyncio
async def test_nonce_header_matches_signed_nonce(client, http):
    await client.send("GET", "deal/info", "dealId=9")
    headers = http.call_args.kwargs["headers"]
    nonce = int(headers["CTG-API-NONCE"])
    assert headers["CTG-API-SIGNATURE"] == generate_signature("shh", "deal/info", "dealId=9", nonce)


@pytest.mark.asyncio
async def test_non_2xx_body_is_passed_through(client, http):
    http.return_value = _response('{"status":false,"message":"Bot not found"}', status_code=404)
    body = await client.bot_info(1)
    assert body == '{"status":false,"message":"Bot not found"}'


@pytest.mark.asyncio
async def test_transport_failure_raises_transport_error(client, http):
    http.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(TransportError) as excinfo:
        await client.send("GET", "bot/all")

    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
    assert excinfo.value.method == "GET"
    assert excinfo.value.url == "https://api.example.test/bot/all?"
    assert http.call_count == 1


@pytest.mark.asyncio
async def test_timeout_is_forwarded_and_surfaced(client, http):
    http.side_effect = requests.Timeout("read timed out")
    with pytest.raises(TransportError, match="timed out"):
        await client.status()
    assert http.call_args.kwargs["timeout"] == client.timeout


@pytest.mark.parametrize("method", ["PUT", "DELETE", "", None, 42])
def test_unsupported_method_fails_synchronously(client, method):
    with patch.object(client._session, "request") as mock_request:
        with pytest.raises(UnsupportedMethodError) as excinfo:
            client.send(method, "bot/all")
    assert excinfo.value.method == method
    mock_request.assert_not_called()


def test_method_coercion_is_case_insensitive():
    assert HttpMethod.coerce("get") is HttpMethod.GET
    assert HttpMethod.coerce(" Post ") is HttpMethod.POST
    assert HttpMethod.coerce(HttpMethod.GET) is HttpMethod.GET


@pytest.mark.asyncio
async def test_calls_at_different_instants_get_fresh_nonces(client, http):
    with patch("cryptorg.client.current_nonce", side_effect=[1700000000000, 1700000000007]):
        await asyncio.gather(
            client.send("GET", "bot/info", "botId=42"),
            client.send("GET", "bot/info", "botId=42"),
        )

    headers = [c.kwargs["headers"] for c in http.call_args_list]
    assert {h["CTG-API-NONCE"] for h in headers} == {"1700000000000", "1700000000007"}
    assert headers[0]["CTG-API-SIGNATURE"] != headers[1]["CTG-API-SIGNATURE"]


@pytest.mark.asyncio
async def test_each_await_of_a_new_call_signs_again(client, http):
    with patch("cryptorg.client.current_nonce", side_effect=[1700000000000, 1700000001000]):
        await client.bot_list()
        await client.bot_list()
    nonces = [c.kwargs["headers"]["CTG-API-NONCE"] for c in http.call_args_list]
    assert nonces == ["1700000000000", "1700000001000"]


def test_base_url_is_normalised():
    c = CryptorgClient(Credentials("k", "s"), base_url="https://api.example.test")
    assert c.base_url == "https://api.example.test/"
    c.close()


def test_context_manager_closes_session():
    with patch("cryptorg.client.requests.Session") as session_cls:
        with CryptorgClient(Credentials("k", "s")):
            pass
    session_cls.return_value.close.assert_called_once()


def test_current_nonce_is_epoch_milliseconds():
    with patch("cryptorg.client.time.time", return_value=1700000000.1234):
        assert current_nonce() == 1700000000123


@pytest.mark.asyncio
async def test_get_never_sends_a_body(client, http):
    await client.send("GET", "bot/info", "botId=42", {"volume": "100"})

    _, url = http.call_args.args
    assert "data" not in http.call_args.kwargs
    assert "volume" not in url


@pytest.mark.asyncio
async def test_request_log_omits_signature_and_secret(client, http, caplog):
    with patch("cryptorg.client.current_nonce", return_value=NONCE):
        with caplog.at_level(logging.DEBUG, logger="cryptorg"):
            await client.send("GET", "bot/info", "botId=42")

    assert "bot/info?botId=42" in caplog.text
    assert GOLDEN_BOT_INFO not in caplog.text
    assert "shh" not in caplog.text


# ── cookies ────────────────────────────────────────────────────────────────


class _CookieSettingHandler(BaseHTTPRequestHandler):
    seen_cookies: List[Optional[str]] = []

    def do_GET(self):
        type(self).seen_cookies.append(self.headers.get("Cookie"))
        body = b'{"status":true}'
        self.send_response(200)
        if self.path.startswith("/bot/info"):
            self.send_header("Set-Cookie", "session=from-bot-info; Path=/")
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def local_server():
    _CookieSettingHandler.seen_cookies = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), _CookieSettingHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}/"
    server.shutdown()
    server.server_close()


@pytest.mark.asyncio
async def test_cookies_never_carry_over_between_calls(local_server):
    with CryptorgClient(Credentials("key-123", "shh"), base_url=local_server) as c:
        c._session.trust_env = False
        await c.bot_info(1)
        await c.bot_list()
        assert len(c._session.cookies) == 0

    assert _CookieSettingHandler.seen_cookies == [None, None]
