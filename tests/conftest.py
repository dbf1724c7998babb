"""
Shared fixtures: settings, an in-memory registration store, a scripted
reCAPTCHA verifier and a Flask test client wired to both.
"""

import pytest
from bson import ObjectId

from registration_api.api.app import create_app
from registration_api.utils.config import Settings
from registration_api.utils.objects import CaptchaResult


ADMIN_KEY = "s3cret-admin-key"
FRONTEND_URL = "http://localhost:5173"


class FakeStore:
    """Stands in for MongoDBHandler, keeping documents in a list."""

    def __init__(self):
        self.documents = []
        self.find_calls = 0
        self.insert_calls = 0
        self.closed = False
        self.find_error = None
        self.insert_error = None

    def find_existing(self, roll_number, email):
        self.find_calls += 1
        if self.find_error is not None:
            raise self.find_error
        for field, value in (("roll_number", roll_number), ("email", email)):
            for document in self.documents:
                if document.get(field) == value:
                    return document
        return None

    def insert_registration(self, document):
        self.insert_calls += 1
        if self.insert_error is not None:
            raise self.insert_error
        stored = {"_id": ObjectId(), **document}
        self.documents.append(stored)
        return str(stored["_id"])

    def get_all_registrations(self):
        return list(self.documents)

    def ping(self):
        return not self.closed

    def close(self):
        self.closed = True

    @property
    def store_calls(self):
        return self.find_calls + self.insert_calls


class FakeVerifier:
    """Returns a fixed CaptchaResult and records the tokens it was asked about."""

    def __init__(self, result=None):
        self.result = result or CaptchaResult(accepted=True, score=0.9)
        self.tokens = []

    def check(self, token):
        self.tokens.append(token)
        return self.result


@pytest.fixture
def settings():
    return Settings(
        mongodb_uri="mongodb://localhost:27017/",
        database_name="registrations_test",
        collection_name="submissions",
        admin_key=ADMIN_KEY,
        frontend_url=FRONTEND_URL,
        captcha_secret_key="captcha-secret",
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def rejecting_verifier():
    return FakeVerifier(CaptchaResult(
        accepted=False,
        reason="CAPTCHA verification failed",
        error_codes=("invalid-input-response",),
    ))


@pytest.fixture
def registration():
    return {
        "name": "Ann",
        "roll_number": 7,
        "gender": "F",
        "email": "ann@x.com",
        "about": "hi",
        "captchaToken": "valid",
    }


@pytest.fixture
def app(settings, store, verifier):
    app = create_app(settings, mongo_handler=store, captcha_verifier=verifier)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
