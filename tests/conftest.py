from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from mpupload.common.config import get_settings
from tests.transfer.mock_storage import MockStorageService


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def mock_storage():
    return MockStorageService()


@pytest.fixture()
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)


@pytest.fixture()
def single_executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)
