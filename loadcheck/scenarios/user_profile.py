"""
Authenticated profile-read scenario.

Logs in once during setup and shares the access token with every
virtual user, so the load phase measures the read path alone rather
than password hashing on every iteration.

The schedule ramps to 50 VUs over 10 s, on to 100 VUs over the next
50 s, then back down to 0 over 10 s.  The run passes when the 99th
percentile of request durations stays under 200 ms.

Environment:
    BASE_URL: Root URL of the service under test.
    LOADCHECK_EMAIL / LOADCHECK_PASSWORD: Login credentials.

Key Concepts Demonstrated:
- Publish-once setup data (the token) shared by every VU
- ``None`` from setup as the signal to abort before any load
- Tolerant JSON parsing inside check predicates
"""

from __future__ import annotations

import logging
import os
from typing import Any

from loadcheck import check, http
from loadcheck.config import get_config

logger = logging.getLogger(__name__)

BASE_URL = get_config().BASE_URL.rstrip("/")

TEST_CREDENTIALS = {
    "email": os.environ.get("LOADCHECK_EMAIL", "test@test.com"),
    "password": os.environ.get("LOADCHECK_PASSWORD", "password"),
}

options = {
    "stages": [
        {"duration": "10s", "target": 50},
        {"duration": "50s", "target": 100},
        {"duration": "10s", "target": 0},
    ],
    "thresholds": {
        "http_req_duration": ["p(99)<200"],
    },
}


def _safe_json(response: Any) -> dict[str, Any]:
    """Return the response body as a dict, or ``{}`` if it isn't a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data
    return {}


def _access_token(response: Any) -> str | None:
    data = _safe_json(response).get("data")
    if not isinstance(data, dict):
        return None
    token = data.get("access_token")
    if not isinstance(token, str) or not token:
        return None
    return token


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def setup() -> dict[str, str] | None:
    """Log in once and hand the access token to every VU."""
    logger.info("Performing one-time login against %s", BASE_URL)

    response = http.post(
        f"{BASE_URL}/api/auth/login",
        json=TEST_CREDENTIALS,
        headers={"Content-Type": "application/json"},
        name="/api/auth/login [POST]",
    )
    login_ok = check(
        response,
        {
            "setup: login status is 200": lambda r: r.status == 200,
            "setup: login response has access_token": lambda r: _access_token(r) is not None,
        },
    )

    token = _access_token(response)
    if not login_ok or token is None:
        logger.error(
            "Login failed in setup phase (status %s): %s",
            response.status,
            response.error or response.text[:200],
        )
        return None

    logger.info("Login successful, access token obtained")
    return {"access_token": token}


def default(data: Any) -> None:
    """Fetch the user list with the shared token and check the response."""
    if not data or not data.get("access_token"):
        logger.error("No access token available from setup")
        return

    response = http.get(
        f"{BASE_URL}/api/users/",
        headers=auth_header(data["access_token"]),
        name="/api/users/ [GET]",
    )
    check(
        response,
        {
            "user profile status is 200": lambda r: r.status == 200,
            "user profile response time < 200ms": lambda r: r.duration < 200,
            "user profile has valid response": lambda r: "data" in _safe_json(r),
        },
    )


def teardown(data: Any) -> None:
    logger.info("Profile scenario completed")
