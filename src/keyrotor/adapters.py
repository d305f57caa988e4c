"""Endpoint factories that turn one key into a ready-to-use HTTP client.

Pass an instance as ``endpoint_factory`` of a provider; the dispatcher calls
``factory(token, model_id)`` once per key and hands the client to request
functions. Every client raises on error statuses so ``classify_error`` can read
the status code off the raised exception.
"""

import contextlib
from typing import Union

from .types import AuthConfig


def _join(base_url: Union[str, None], path: str) -> str:
    if not base_url:
        return path
    if path.startswith(("http://", "https://")):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


# ---------- requests (sync) ----------


class RequestsEndpointClient:
    def __init__(
        self,
        token: str,
        model_id: Union[str, None],
        base_url: Union[str, None],
        auth: AuthConfig,
        timeout: Union[float, None],
        session=None,
    ):
        if session is None:
            import requests  # noqa: PLC0415

            session = requests.Session()
        self.session = session
        self.model_id = model_id
        self.base_url = base_url
        self._token = token
        self._auth = auth
        self._timeout = timeout

    def request(self, method: str, path: str, **kwargs):
        headers = {**kwargs.pop("headers", {}), **self._auth.headers_for(self._token)}
        params = {**kwargs.pop("params", {}), **self._auth.params_for(self._token)}
        kwargs.setdefault("timeout", self._timeout)
        resp = self.session.request(
            method, _join(self.base_url, path), headers=headers, params=params, **kwargs
        )
        # requests.HTTPError carries .response.status_code
        resp.raise_for_status()
        return resp

    def get(self, path: str, **kw):
        return self.request("GET", path, **kw)

    def post(self, path: str, **kw):
        return self.request("POST", path, **kw)

    def close(self):
        with contextlib.suppress(Exception):
            self.session.close()


class RequestsEndpoint:
    def __init__(
        self,
        base_url: Union[str, None] = None,
        auth: Union[AuthConfig, None] = None,
        timeout: Union[float, None] = 30.0,
    ):
        self.base_url = base_url
        self.auth = auth or AuthConfig()
        self.timeout = timeout

    def __call__(self, token: str, model_id: Union[str, None]) -> RequestsEndpointClient:
        return RequestsEndpointClient(token, model_id, self.base_url, self.auth, self.timeout)


# ---------- httpx (sync + async) ----------


def _raise_for_status(response):
    response.raise_for_status()


async def _araise_for_status(response):
    response.raise_for_status()


class HttpxEndpoint:
    """Builds an ``httpx.Client`` per key with auth, base_url and raise-on-error hooks."""

    def __init__(
        self,
        base_url: str = "",
        auth: Union[AuthConfig, None] = None,
        timeout: Union[float, None] = 30.0,
        **client_kwargs,
    ):
        self.base_url = base_url
        self.auth = auth or AuthConfig()
        self.timeout = timeout
        self.client_kwargs = client_kwargs

    def _options(self, token: str) -> dict:
        return {
            "base_url": self.base_url,
            "headers": self.auth.headers_for(token),
            "params": self.auth.params_for(token),
            "timeout": self.timeout,
            **self.client_kwargs,
        }

    def __call__(self, token: str, model_id: Union[str, None]):
        import httpx  # noqa: PLC0415

        return httpx.Client(event_hooks={"response": [_raise_for_status]}, **self._options(token))


class AsyncHttpxEndpoint(HttpxEndpoint):
    def __call__(self, token: str, model_id: Union[str, None]):
        import httpx  # noqa: PLC0415

        return httpx.AsyncClient(
            event_hooks={"response": [_araise_for_status]}, **self._options(token)
        )


# ---------- aiohttp (async) ----------


class AiohttpEndpointClient:
    """Lazily opens an ``aiohttp.ClientSession`` on first request (inside the running loop)."""

    def __init__(
        self,
        token: str,
        model_id: Union[str, None],
        base_url: Union[str, None],
        auth: AuthConfig,
        timeout: Union[float, None],
    ):
        self.model_id = model_id
        self.base_url = base_url
        self._token = token
        self._auth = auth
        self._timeout = timeout
        self.session = None

    def _session(self):
        if self.session is None or self.session.closed:
            import aiohttp  # noqa: PLC0415

            timeout = aiohttp.ClientTimeout(total=self._timeout)
            # ClientResponseError carries .status, which classify_error reads
            self.session = aiohttp.ClientSession(timeout=timeout, raise_for_status=True)
        return self.session

    async def request(self, method: str, path: str, **kwargs):
        headers = {**kwargs.pop("headers", {}), **self._auth.headers_for(self._token)}
        params = {**kwargs.pop("params", {}), **self._auth.params_for(self._token)}
        return await self._session().request(
            method, _join(self.base_url, path), headers=headers, params=params, **kwargs
        )

    async def get(self, path: str, **kw):
        return await self.request("GET", path, **kw)

    async def post(self, path: str, **kw):
        return await self.request("POST", path, **kw)

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()


class AiohttpEndpoint:
    def __init__(
        self,
        base_url: Union[str, None] = None,
        auth: Union[AuthConfig, None] = None,
        timeout: Union[float, None] = 30.0,
    ):
        self.base_url = base_url
        self.auth = auth or AuthConfig()
        self.timeout = timeout

    def __call__(self, token: str, model_id: Union[str, None]) -> AiohttpEndpointClient:
        return AiohttpEndpointClient(token, model_id, self.base_url, self.auth, self.timeout)
