"""
Tests for JWT bearer authentication.
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from django.conf import settings
from rest_framework import exceptions
from rest_framework.test import APIRequestFactory

from apps.core.authentication import JWTAuthentication


def make_token(user_id, expires_in=timedelta(hours=1), secret=None):
    payload = {
        'user_id': str(user_id) if user_id else None,
        'exp': datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret or settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def authenticate(header):
    request = APIRequestFactory().get('/v1/memberships/me', HTTP_AUTHORIZATION=header)
    return JWTAuthentication().authenticate(request)


@pytest.mark.django_db
class TestJWTAuthentication:

    def test_valid_token(self, user):
        authenticated, payload = authenticate(f'Bearer {make_token(user.pk)}')

        assert authenticated == user
        assert payload['user_id'] == str(user.pk)

    def test_no_header_is_anonymous(self, db):
        request = APIRequestFactory().get('/v1/memberships/me')

        assert JWTAuthentication().authenticate(request) is None

    def test_other_scheme_is_ignored(self, db):
        assert authenticate('Basic dXNlcjpwYXNz') is None

    def test_expired_token(self, user):
        with pytest.raises(exceptions.AuthenticationFailed, match='expired'):
            authenticate(f'Bearer {make_token(user.pk, expires_in=timedelta(seconds=-10))}')

    def test_wrong_signature(self, user):
        token = make_token(user.pk, secret='x' * 40)

        with pytest.raises(exceptions.AuthenticationFailed):
            authenticate(f'Bearer {token}')

    def test_malformed_header(self, db):
        with pytest.raises(exceptions.AuthenticationFailed):
            authenticate('Bearer one two')

    def test_missing_user_claim(self, db):
        with pytest.raises(exceptions.AuthenticationFailed):
            authenticate(f'Bearer {make_token(None)}')

    def test_inactive_user(self, user):
        user.is_active = False
        user.save()

        with pytest.raises(exceptions.AuthenticationFailed):
            authenticate(f'Bearer {make_token(user.pk)}')

    def test_malformed_user_id(self, db):
        with pytest.raises(exceptions.AuthenticationFailed):
            authenticate(f'Bearer {make_token("not-a-uuid")}')

    def test_end_to_end_request(self, api_client, member):
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {make_token(member.pk)}')

        response = api_client.get('/v1/memberships/me')

        assert response.status_code == 200
        assert response.data['count'] == 1
        assert 'X-Request-ID' in response
