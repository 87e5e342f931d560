import itertools

import pytest
from django.contrib.auth import get_user_model

_user_counter = itertools.count(1)


@pytest.fixture
def make_user(db):
    def _make_user(**overrides):
        index = next(_user_counter)
        params = {
            "username": f"user{index}",
            "email": f"user{index}@example.com",
            "password": "pass1234",
        }
        params.update(overrides)
        return get_user_model().objects.create_user(**params)

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user(username="alice", email="alice@example.com")


@pytest.fixture
def account(user):
    return user.credit_account
