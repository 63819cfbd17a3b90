"""HTTP client with browser-like defaults."""

from __future__ import annotations

import warnings
from collections.abc import Mapping
from typing import Any, Callable
from urllib.parse import urlencode

import requests
import requests.cookies
import requests.utils

from pcsrequester.dial import check_proxy_addr, environment_proxy, proxy_for

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_2) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/63.0.3239.132 Safari/537.36"
)


class HTTPClient:
    """A cookie-keeping HTTP client; TLS verification is off unless enabled."""

    def __init__(self) -> None:
        self.user_agent = USER_AGENT
        self.timeout: float | None = 30.0
        self.response_header_timeout: float | None = 10.0
        self.session = requests.Session()
        self.session.trust_env = False
        self.session.verify = False
        self._secure = False
        self._proxy: Callable[[str], str | None] = proxy_for

    def proxy(self, proxy_addr: str) -> None:
        """Use ``proxy_addr``; if it is empty or invalid, use the environment's proxies."""
        try:
            url = check_proxy_addr(proxy_addr)
        except ValueError:
            self._proxy = environment_proxy
            return
        self._proxy = lambda _target: url

    def proxies_for(self, url: str) -> dict[str, str]:
        chosen = self._proxy(url)
        return {"http": chosen, "https": chosen} if chosen else {}

    def https_secure(self, secure: bool) -> None:
        """Turn TLS certificate verification on or off."""
        self._secure = secure
        self.session.verify = secure

    def keep_alive(self, enabled: bool) -> None:
        if enabled:
            self.session.headers["Connection"] = "keep-alive"
        else:
            self.session.headers["Connection"] = "close"

    def gzip(self, enabled: bool) -> None:
        if enabled:
            self.session.headers["Accept-Encoding"] = requests.utils.default_headers()["Accept-Encoding"]
        else:
            self.session.headers["Accept-Encoding"] = "identity"

    def reset_cookiejar(self) -> None:
        self.session.cookies = requests.cookies.cookiejar_from_dict({})

    def _timeouts(self) -> tuple[float | None, float | None] | None:
        connect = self.timeout or None
        reads = [t for t in (self.timeout, self.response_header_timeout) if t]
        read = min(reads) if reads else None
        if connect is None and read is None:
            return None
        return (connect, read)

    def req(
        self,
        method: str,
        url: str,
        post: Any = None,
        header: Mapping[str, str] | None = None,
    ) -> requests.Response:
        """Send a request and return the response with its body not yet read.

        ``post`` may be a reader, a mapping (sent form-encoded), a string or bytes.
        """
        body: Any = None
        content_length = 0
        content_type = ""
        if post is not None:
            if hasattr(post, "read"):
                body = post
            elif isinstance(post, Mapping):
                pairs = sorted((str(k), str(v)) for k, v in post.items())
                body = urlencode(pairs).encode()
            elif isinstance(post, str):
                body = post.encode()
            elif isinstance(post, (bytes, bytearray, memoryview)):
                body = bytes(post)
            else:
                raise TypeError(f"requester.Req: unknown post type: {post!r}")

            if callable(getattr(post, "content_length", None)):
                content_length = post.content_length()
            elif hasattr(post, "__len__") and not isinstance(post, Mapping):
                content_length = len(post)
            if callable(getattr(post, "content_type", None)):
                content_type = post.content_type()

        headers = {"User-Agent": self.user_agent}
        if content_type:
            headers["Content-Type"] = content_type
        if content_length and hasattr(body, "read"):
            headers["Content-Length"] = str(content_length)
        if header:
            headers.update(header)

        with warnings.catch_warnings():
            if not self._secure:
                warnings.simplefilter("ignore")
            return self.session.request(
                method,
                url,
                data=body,
                headers=headers,
                proxies=self.proxies_for(url),
                timeout=self._timeouts(),
                stream=True,
            )

    def fetch(
        self,
        method: str,
        url: str,
        post: Any = None,
        header: Mapping[str, str] | None = None,
    ) -> bytes:
        """Send a request and return the whole response body."""
        with self.req(method, url, post, header) as resp:
            return resp.content


DEFAULT_CLIENT = HTTPClient()


def http_get(url: str) -> bytes:
    return DEFAULT_CLIENT.fetch("GET", url)


def req(method: str, url: str, post: Any = None, header: Mapping[str, str] | None = None) -> requests.Response:
    return DEFAULT_CLIENT.req(method, url, post, header)


def fetch(method: str, url: str, post: Any = None, header: Mapping[str, str] | None = None) -> bytes:
    return DEFAULT_CLIENT.fetch(method, url, post, header)