import asyncio
from datetime import datetime

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from gnosis.core.database import get_db
from gnosis.core.dependencies import get_current_user
from gnosis.core.security import hash_password
from gnosis.main import app

PASSWORD = "Secret123"


def run(coro):
    """Drive a motor-mock coroutine from a synchronous test"""
    return asyncio.run(coro)


def make_user(db, email: str, role: str = "student", **extra) -> dict:
    now = datetime.utcnow()
    user = {
        "email": email,
        "password": hash_password(PASSWORD),
        "firstName": extra.pop("firstName", "Test"),
        "lastName": extra.pop("lastName", "User"),
        "role": role,
        "provider": "local",
        "profilePic": "",
        "isEmailVerified": True,
        "createdAt": now,
        "updatedAt": now,
        **extra,
    }
    user["_id"] = run(db.users.insert_one(user)).inserted_id
    return user


@pytest.fixture
def db():
    return AsyncMongoMockClient()["gnosis_test"]


@pytest.fixture
def auth():
    """Holds the user the overridden get_current_user returns"""
    return {"user": None}


@pytest.fixture
def client(db, auth):
    async def override_db():
        return db

    async def override_user():
        if auth["user"] is None:
            raise HTTPException(status_code=401, detail="Access denied. No token provided.")
        return auth["user"]

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = override_user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return make_user(db, "admin@gnosis.test", role="admin", firstName="Ada", lastName="Admin")


@pytest.fixture
def student(db):
    return make_user(db, "student@gnosis.test", role="student", firstName="Sam", lastName="Student")


@pytest.fixture
def as_admin(auth, admin):
    auth["user"] = admin
    return admin


@pytest.fixture
def as_student(auth, student):
    auth["user"] = student
    return student
