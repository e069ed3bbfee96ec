import io

import pytest

from config import TestingConfig
from fakes import FakeClient, FakeStorageRouter
from utils.progress import ProgressPrinter


@pytest.fixture
def cfg():
    return TestingConfig()


@pytest.fixture
def source():
    return FakeClient()


@pytest.fixture
def destination():
    return FakeClient()


@pytest.fixture
def progress_stream():
    return io.StringIO()


@pytest.fixture
def progress(progress_stream):
    return ProgressPrinter(stream=progress_stream)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def router(source):
    return FakeStorageRouter(source)
