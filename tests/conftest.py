"""
Pytest fixtures for the Portabella encrypted client tests.
Provides key pairs and an in-memory backend behind httpx.MockTransport.
"""

import json
from typing import Any, Callable, Union

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from boards.transport import Transport
from e2ee.keypair import KeyPair
from e2ee.rsa import serialize_private_key, serialize_public_key

BASE_URL = "http://backend.test"

Handler = Callable[[httpx.Request], httpx.Response]
Route = Union[httpx.Response, Handler, Any]


class FakeBackend:
    """Routes requests by (method, path) and records every request it sees."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, response: Route = None) -> None:
        """Register a response: an httpx.Response, a handler, or a JSON body (None -> 204)."""
        self.routes[(method.upper(), path)] = response

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, text=f"No route for {request.method} {request.url.path}")

        route = self.routes[key]
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        if route is None:
            return httpx.Response(204)
        return httpx.Response(200, json=route)

    def bodies(self, method: str, path: str) -> list[Any]:
        """Decoded JSON bodies of every request sent to a route."""
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method.upper() and r.url.path == path and r.content
        ]

    def transport(self, auth=None) -> Transport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handle))
        return Transport(BASE_URL, auth=auth, client=client)


@pytest.fixture
def backend():
    """Empty fake backend."""
    return FakeBackend()


@pytest.fixture
def user_key_pair():
    """Fresh EC key pair for the acting user."""
    return KeyPair.generate()


@pytest.fixture
def other_key_pair():
    """Fresh EC key pair for a second user."""
    return KeyPair.generate()


@pytest.fixture(scope="session")
def rsa_pem_pair():
    """PEM (public, private) for a legacy RSA key, generated once."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return serialize_public_key(private_key.public_key()), serialize_private_key(private_key)


@pytest.fixture
def rsa_key_pair(rsa_pem_pair):
    """Legacy RSA key pair built from raw PEM."""
    public_pem, private_pem = rsa_pem_pair
    return KeyPair.from_raw(public_pem, private_pem)
