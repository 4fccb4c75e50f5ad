"""
userlink test suite.

Tests are organized by layer:
    tests/unit/         Unit tests (transports against a local server, no external I/O)
    tests/integration/  Integration tests (CLI via click's CliRunner)
    tests/safety/       Guards on the public Transport surface

Run all tests:
    pytest

Run unit tests only:
    pytest tests/unit/
"""
