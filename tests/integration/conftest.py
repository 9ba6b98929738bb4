"""
Integration fixtures: a live target service on a random local port.

The Flask app from :mod:`tests.integration.target_app` is served by
werkzeug's threaded server in a daemon thread, so the harness talks to
it over real sockets exactly as it would to a deployed service.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest
from faker import Faker
from werkzeug.serving import make_server

from tests.integration.target_app import create_app

fake = Faker()


@pytest.fixture(scope="session")
def credentials() -> dict[str, str]:
    return {"email": fake.email(), "password": fake.password(length=12)}


@pytest.fixture(scope="session")
def live_server(credentials) -> Iterator[str]:
    """Serve the target app and yield its base URL."""
    users = [
        {"id": 1, **credentials},
        {"id": 2, "email": fake.email(), "password": fake.password()},
    ]
    app = create_app(users, secret=fake.sha256())

    server = make_server("127.0.0.1", 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_port}"
    finally:
        server.shutdown()
        thread.join(timeout=5)


@pytest.fixture
def unused_url() -> str:
    """A URL on which nothing listens."""
    server = make_server("127.0.0.1", 0, create_app([], secret="unused"))
    port = server.server_port
    server.server_close()
    return f"http://127.0.0.1:{port}"
