"""
Custom DRF authentication classes.
"""
import logging
import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework import exceptions

logger = logging.getLogger(__name__)


class JWTAuthentication(BaseAuthentication):
    """
    Authenticate requests carrying ``Authorization: Bearer <jwt>``.

    Tokens are issued by the identity service; this class only verifies the
    signature and expiry and loads the active user named by the ``user_id``
    claim.
    """

    keyword = 'Bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()

        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise exceptions.AuthenticationFailed('Invalid authorization header.')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token encoding.')

        return self.authenticate_token(token)

    def authenticate_token(self, token):
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired.')
        except jwt.InvalidTokenError:
            raise exceptions.AuthenticationFailed('Invalid token.')

        user_id = payload.get('user_id')
        if not user_id:
            raise exceptions.AuthenticationFailed('Token carries no user_id claim.')

        User = get_user_model()
        try:
            user = User.objects.get(id=user_id, is_active=True)
        except (User.DoesNotExist, DjangoValidationError, ValueError):
            logger.warning(
                "JWT references unknown or inactive user",
                extra={'user_id': str(user_id)}
            )
            raise exceptions.AuthenticationFailed('User not found or inactive.')

        return (user, payload)

    def authenticate_header(self, request):
        return self.keyword
