"""Test helpers package for shared fakes."""

from tests.helpers.fake_connection import FakeConnection

__all__ = [
    "FakeConnection",
]
