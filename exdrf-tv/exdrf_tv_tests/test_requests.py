from exdrf_tv.data_source import FetchParams
from exdrf_tv.requests import FetchRequestManager


def make_params():
    return FetchParams(page_index=0, page_size=10)


def test_tokens_increase():
    manager = FetchRequestManager()
    assert manager.latest_token is None
    first = manager.add_request(make_params())
    second = manager.add_request(make_params())
    assert (first.token, second.token) == (0, 1)
    assert manager.latest_token == 1


def test_only_latest_is_applied():
    manager = FetchRequestManager()
    first = manager.add_request(make_params())
    second = manager.add_request(make_params())
    assert manager.pending
    assert manager.complete(second.token)
    assert not manager.pending
    assert not manager.complete(first.token)
    assert first.done and second.done
    assert manager.requests == {}


def test_discard_forgets_request():
    manager = FetchRequestManager()
    first = manager.add_request(make_params())
    manager.add_request(make_params())
    manager.discard(first.token)
    assert first.token not in manager.requests
    assert manager.pending
    manager.discard(first.token)
