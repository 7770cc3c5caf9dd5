"""
Test settings: SQLite, fast hashing, no real outbound calls.
"""
from core.settings.base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

# Fixed Fernet key so integration credentials round-trip in tests
ENCRYPTION_KEY = 'p5Wl0m3lQ0o2vbm3K0f2kq0v2pX8d8s8Yl1oYv0w2QU='

DELIVERY_BASE_URL = 'https://delivery.test/d'

# In-memory SQLite is per connection; background threads would not see test data
SIDE_EFFECTS_INLINE = True

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    'DEFAULT_THROTTLE_CLASSES': [],
    'DEFAULT_THROTTLE_RATES': {
        'anon': None,
        'user': None,
        'delivery': None,
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'CRITICAL'},
}
