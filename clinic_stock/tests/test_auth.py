import pytest

from clinic_stock.auth import BcryptAuthenticator, authenticate
from clinic_stock.config import set_config_for_test
from clinic_stock.data.models import User
from clinic_stock.errors import AuthenticationFailed


@pytest.fixture(autouse=True)
def config():
    set_config_for_test(log_level="WARNING", password_hash_rounds=4)


@pytest.fixture
def authenticator():
    return BcryptAuthenticator()


def _user(authenticator, password="correct horse"):
    return User(
        id="user-9",
        name="Dana",
        username="dana",
        role="Admin",
        password_hash=authenticator.hash_password(password) if password else None,
    )


def test_rounds_default_from_config(authenticator):
    assert authenticator.rounds == 4


def test_hash_is_salted(authenticator):
    first = authenticator.hash_password("pw")
    second = authenticator.hash_password("pw")
    assert first != second
    assert first != "pw"


def test_empty_password_cannot_be_hashed(authenticator):
    with pytest.raises(ValueError):
        authenticator.hash_password("")


def test_verify(authenticator):
    user = _user(authenticator)
    assert authenticator.verify(user, "correct horse")
    assert not authenticator.verify(user, "battery staple")
    assert not authenticator.verify(user, "")


def test_verify_without_or_with_malformed_hash(authenticator):
    assert not authenticator.verify(_user(authenticator, password=None), "anything")
    broken = _user(authenticator).model_copy(update={"password_hash": "not-a-bcrypt-hash"})
    assert not authenticator.verify(broken, "correct horse")


def test_authenticate(authenticator):
    user = _user(authenticator)
    assert authenticate([user], "dana", "correct horse", authenticator) is user

    for username, password in [("dana", "nope"), ("nobody", "correct horse")]:
        with pytest.raises(AuthenticationFailed, match="Invalid username or password"):
            authenticate([user], username, password, authenticator)
