"""Test helpers for LogiSync tests."""

from tests.helpers.orders import make_record, make_row
from tests.helpers.provider import ProviderStub

__all__ = ["make_record", "make_row", "ProviderStub"]
