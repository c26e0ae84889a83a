from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Validate the JWT configuration when Django initializes.
        """
        self._validate_jwt_configuration()

    def _validate_jwt_configuration(self):
        jwt_secret = getattr(settings, 'JWT_SECRET_KEY', None)

        if not jwt_secret:
            raise ImproperlyConfigured(
                "JWT_SECRET_KEY must be set in environment variables."
            )

        if not getattr(settings, 'DEBUG', False) and jwt_secret == getattr(settings, 'SECRET_KEY', None):
            raise ImproperlyConfigured(
                "JWT_SECRET_KEY must be different from SECRET_KEY."
            )

        if len(jwt_secret) < 32:
            logger.warning(
                "JWT_SECRET_KEY is shorter than 32 characters",
                extra={'length': len(jwt_secret)}
            )
