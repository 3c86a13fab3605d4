import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# ---------------------------------
#   .env
# ---------------------------------
# Load .env from the project root when present
env_path = BASE_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

# ---------------------------------
#   Security & Debug
# ---------------------------------
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me-in-development-only")

DEBUG = os.getenv("DJANGO_DEBUG", "True") == "True"

# e.g. "127.0.0.1 localhost stores.example-hotel.com"
_raw_hosts = os.getenv("DJANGO_ALLOWED_HOSTS", "")
if _raw_hosts.strip():
    ALLOWED_HOSTS = _raw_hosts.split()
else:
    ALLOWED_HOSTS = ["127.0.0.1", "localhost"]

INSTALLED_APPS = [
    # modeltranslation must come before admin to patch its forms
    "modeltranslation",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "solo",
    "import_export",
    # Hotel stock control
    "core.apps.CoreConfig",
    "catalog.apps.CatalogConfig",
    "inventory.apps.InventoryConfig",
    "purchasing.apps.PurchasingConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.locale.LocaleMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "hotelops.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
                "django.template.context_processors.i18n",
            ],
        },
    },
]

WSGI_APPLICATION = "hotelops.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

LANGUAGE_CODE = "en"

LANGUAGES = [
    ("en", "English"),
    ("sw", "Kiswahili"),
]

MODELTRANSLATION_DEFAULT_LANGUAGE = "en"
MODELTRANSLATION_LANGUAGES = ("en", "sw")
MODELTRANSLATION_FALLBACK_LANGUAGES = {
    "default": ("en",),
}

TIME_ZONE = "Africa/Nairobi"
USE_I18N = True
USE_TZ = True

# -----------------------------
#   Static
# -----------------------------
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------
#   Logging
# -----------------------------
LOG_LEVEL = os.getenv("HOTELOPS_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "catalog": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "inventory": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "purchasing": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
