import pytest
import patchhub
import os
import pathlib


@pytest.fixture(scope="function", autouse=True)
def settestdefaults(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    patchhub.can_network = False
    patchhub.MAIN_CONFIG = dict(patchhub.DEFAULT_CONFIG)
    patchhub.USER_CONFIG = {
        'name': 'Test Override',
        'email': 'test-override@example.com',
    }
    monkeypatch.setenv('XDG_DATA_HOME', str(tmp_path))
    monkeypatch.setenv('XDG_CACHE_HOME', str(tmp_path))


@pytest.fixture(scope="function")
def sampledir(request: pytest.FixtureRequest) -> str:
    return os.path.join(request.path.parent, 'samples')


class FakeLoreAPIClient:
    """Serves pages out of tests/samples, keyed by offset."""

    def __init__(self, sampledir: str, feeds=None, lists=None, feed_error_at=None, lists_error_at=None):
        self.sampledir = sampledir
        self.feeds = feeds or dict()
        self.lists = lists or dict()
        self.feed_error_at = feed_error_at
        self.lists_error_at = lists_error_at
        self.feed_calls = list()
        self.lists_calls = list()

    def _read(self, name: str) -> str:
        with open(os.path.join(self.sampledir, name), 'r') as fh:
            return fh.read()

    def request_patch_feed(self, target_list: str, offset: int) -> str:
        self.feed_calls.append((target_list, offset))
        if offset == self.feed_error_at:
            raise patchhub.FeedError(f'Server returned an error for {target_list}: 503')
        if offset not in self.feeds:
            raise patchhub.EndOfFeed(f'No entries in {target_list} past offset {offset}')
        return self._read(self.feeds[offset])

    def request_available_lists(self, offset: int) -> str:
        self.lists_calls.append(offset)
        if offset == self.lists_error_at:
            raise patchhub.CatalogError('Server returned an error: 500')
        if offset not in self.lists:
            return self._read('lists-empty.html')
        return self._read(self.lists[offset])


@pytest.fixture(scope="function")
def fakeclient(sampledir: str):
    def _make(**kwargs):
        return FakeLoreAPIClient(sampledir, **kwargs)
    return _make
