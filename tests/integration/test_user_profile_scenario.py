"""
Integration tests: the bundled profile scenario against a live service.

The scenario's own 70-second schedule is replaced by sub-second stages
through the same override path the CLI's ``--options`` file uses; its
setup, iteration and checks run unchanged over real HTTP.

Key Concepts Demonstrated:
- Running a full load lifecycle against a real socket server
- Tag-filtered thresholds (``checks{check:...}``)
- Verifying the setup-failure path with wrong credentials
"""

from __future__ import annotations

import logging

import pytest

from loadcheck.metrics import HTTP_REQ_DURATION, HTTP_REQS
from loadcheck.models import RunState
from loadcheck.options import scenario_from_module
from loadcheck.orchestrator import run
from loadcheck.scenarios import user_profile

pytestmark = pytest.mark.integration

FAST_OPTIONS = {
    "stages": [["200ms", 3], ["200ms", 3], ["100ms", 0]],
    "thresholds": {
        "http_req_failed": ["rate==0"],
        "checks{check:user profile status is 200}": ["rate==1"],
        "checks{check:user profile has valid response}": ["rate==1"],
        "http_req_duration{name:/api/users/ [GET]}": ["p(99)<2000"],
    },
}


@pytest.fixture
def profile_scenario(monkeypatch, live_server, credentials):
    monkeypatch.setattr(user_profile, "BASE_URL", live_server)
    monkeypatch.setattr(user_profile, "TEST_CREDENTIALS", dict(credentials))
    return user_profile


def test_profile_scenario_passes_against_live_service(profile_scenario, testing_config):
    # Arrange
    scenario = scenario_from_module(profile_scenario, FAST_OPTIONS)

    # Act
    report = run(scenario, config=testing_config)

    # Assert
    assert report.passed is True, [r.to_dict() for r in report.thresholds]
    assert report.exit_code == 0
    assert report.iterations > 0
    assert report.checks["setup: login status is 200"].passes == 1
    assert report.checks["user profile status is 200"].passes == report.iterations
    assert report.metrics[HTTP_REQS].count == report.iterations + 1
    assert report.metrics[HTTP_REQ_DURATION].max < 2000


def test_wrong_credentials_fail_setup_without_load(
    profile_scenario, testing_config, monkeypatch, caplog
):
    """Test that a rejected login aborts before any VU is started."""
    # Arrange
    monkeypatch.setattr(
        profile_scenario,
        "TEST_CREDENTIALS",
        {"email": "nobody@example.com", "password": "wrong"},
    )
    caplog.set_level(logging.ERROR, logger=profile_scenario.__name__)
    scenario = scenario_from_module(profile_scenario, FAST_OPTIONS)

    # Act
    report = run(scenario, config=testing_config)

    # Assert
    assert report.passed is False
    assert report.reason == "setup failure"
    assert report.exit_code == 1
    assert report.iterations == 0
    assert RunState.LOAD_RUNNING not in report.states
    assert report.metrics[HTTP_REQS].count == 1
    assert report.checks["setup: login status is 200"].fails == 1
    assert "user profile status is 200" not in report.checks
    assert "Invalid credentials" in caplog.text


def test_unreachable_service_fails_setup(profile_scenario, testing_config, monkeypatch, unused_url):
    monkeypatch.setattr(profile_scenario, "BASE_URL", unused_url)

    report = run(scenario_from_module(profile_scenario, FAST_OPTIONS), config=testing_config)

    assert report.reason == "setup failure"
    assert report.metrics["http_req_failed"].rate == 1.0


def test_scenario_default_options_are_the_reference_shape():
    scenario = scenario_from_module(user_profile)

    assert [(stage.duration, stage.target) for stage in scenario.stages] == [
        (10, 50),
        (50, 100),
        (10, 0),
    ]
    assert [(t.metric, t.expression) for t in scenario.thresholds] == [
        ("http_req_duration", "p(99)<200"),
    ]
