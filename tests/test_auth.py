"""
Test operator token handling
"""
from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.core.auth import create_access_token, get_current_operator
from app.core.config import settings


def _credentials(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_create_access_token_claims():
    token = create_access_token("operator-7")

    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload["sub"] == "operator-7"
    assert payload["exp"] > payload["iat"]


@pytest.mark.asyncio
async def test_get_current_operator_valid_token():
    operator = await get_current_operator(_credentials(create_access_token("operator-7")))

    assert operator.id == "operator-7"


@pytest.mark.asyncio
async def test_get_current_operator_expired_token():
    token = create_access_token("operator-7", expires_delta=timedelta(minutes=-5))

    with pytest.raises(HTTPException) as exc_info:
        await get_current_operator(_credentials(token))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_operator_wrong_secret():
    token = jwt.encode({"sub": "operator-7"}, "another-secret", algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exc_info:
        await get_current_operator(_credentials(token))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_operator_missing_subject():
    token = jwt.encode({"role": "admin"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exc_info:
        await get_current_operator(_credentials(token))

    assert exc_info.value.status_code == 401
