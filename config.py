import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as stringdesk.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "stringdesk.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity forwarded by the upstream auth guard
    PRINCIPAL_USER_HEADER = os.getenv("PRINCIPAL_USER_HEADER", "X-User-Id")
    PRINCIPAL_ROLE_HEADER = os.getenv("PRINCIPAL_ROLE_HEADER", "X-User-Role")

    # Stripe
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "krw")

    # Booking windows and same-day cutoffs are judged on the desk's wall clock
    DESK_TIMEZONE = os.getenv("DESK_TIMEZONE", "Asia/Seoul")

    # Service passes
    PASS_VALIDITY_DAYS = int(os.getenv("PASS_VALIDITY_DAYS", "365"))
    SERVICE_TYPE_DEFAULT = "stringing"

    # Points: share of the order total credited on purchase confirmation
    POINTS_REWARD_RATE = float(os.getenv("POINTS_REWARD_RATE", "0.01"))

    # Rentals
    RENTAL_ALLOWED_DAYS = (7, 15, 30)

    # Housekeeping
    DRAFT_STALE_DAYS = int(os.getenv("DRAFT_STALE_DAYS", "14"))
    BATCH_LOCK_TTL_SECONDS = 5 * 60
    IDEMPOTENCY_TTL_HOURS = 24

    # Store default slot settings when the app starts (tables must exist)
    SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "true").lower() == "true"

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    SEED_ON_STARTUP = False
    DESK_TIMEZONE = "UTC"
