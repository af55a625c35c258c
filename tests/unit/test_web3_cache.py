import pytest

from core.services import web3_cache
from core.services.web3_cache import clear_web3_cache, get_async_web3


@pytest.fixture(autouse=True)
def empty_cache():
    clear_web3_cache()
    yield
    clear_web3_cache()


def test_same_url_reuses_instance():
    a = get_async_web3("http://127.0.0.1:8545")
    b = get_async_web3(" http://127.0.0.1:8545 ")
    assert a is b


def test_different_urls_get_different_instances():
    assert get_async_web3("http://127.0.0.1:8545") is not get_async_web3("http://127.0.0.1:8546")


def test_expired_entry_is_rebuilt(monkeypatch):
    now = [1_000.0]
    monkeypatch.setattr(web3_cache, "time", lambda: now[0])

    a = get_async_web3("http://127.0.0.1:8545", ttl_sec=60)
    now[0] += 59
    assert get_async_web3("http://127.0.0.1:8545", ttl_sec=60) is a
    now[0] += 1
    assert get_async_web3("http://127.0.0.1:8545", ttl_sec=60) is not a


def test_empty_url_is_rejected():
    with pytest.raises(ValueError):
        get_async_web3("")
