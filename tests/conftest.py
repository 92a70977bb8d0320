"""Shared fixtures for volley scenario tests."""

import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from volley import config
from volley.executor import ResponseRecord

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    original = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(original)


@pytest.fixture
def global_volley_dir(tmp_path, monkeypatch):
    """Override the global ~/.volley directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".volley"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(config, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(config, "GLOBAL_CONFIG", fake_global / "config.yml")
    return fake_global


@pytest.fixture
def cert_pem():
    return (FIXTURES / "client-cert.pem").read_text()


@pytest.fixture
def key_pem():
    return (FIXTURES / "client-key.pem").read_text()


@pytest.fixture
def ca_pem():
    return (FIXTURES / "ca.pem").read_text()


def make_record(
    iteration=0,
    status_code=200,
    body=b"",
    headers=None,
    reason="OK",
    elapsed=0.042,
    error=None,
):
    """Factory for ResponseRecord objects."""
    r = ResponseRecord(iteration)
    r.status_code = status_code
    r.reason = reason
    r.headers = headers or {}
    r.body = body.encode() if isinstance(body, str) else body
    r.elapsed = elapsed
    r.error = error
    return r
