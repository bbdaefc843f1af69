# slipbox/settings.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("slipbox_backend")

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")

DATABASE_URL        = os.environ.get("DATABASE_URL", "")
DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "slipbox")
DB_USER             = os.environ.get("DB_USER", "postgres")
DB_PASSWORD         = os.environ.get("DB_PASSWORD")
DB_SECRET_ID        = os.environ.get("DB_SECRET_ID")

IS_LOCAL_DB = (DB_HOST == "localhost")
LOCAL_DB_URL = os.environ.get("LOCAL_DB_URL", "sqlite:///slipbox.db")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"

DEFAULT_CATEGORIES_PATH = os.environ.get(
    "DEFAULT_CATEGORIES_PATH",
    os.path.join(os.path.dirname(__file__), "default_categories.jsonc"),
)

# Field bounds
SLIP_CONTENT_MAX_LENGTH      = int(os.environ.get("SLIP_CONTENT_MAX_LENGTH", "1000"))
TOPIC_NAME_MAX_LENGTH        = int(os.environ.get("TOPIC_NAME_MAX_LENGTH", "255"))
TOPIC_DESCRIPTION_MAX_LENGTH = int(os.environ.get("TOPIC_DESCRIPTION_MAX_LENGTH", "500"))
CATEGORY_NAME_MAX_LENGTH     = int(os.environ.get("CATEGORY_NAME_MAX_LENGTH", "255"))


def _build_creds():
    from google.auth import default as google_auth_default
    from google.oauth2 import service_account

    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_password() -> str:
    global DB_PASSWORD

    if DB_PASSWORD:
        return DB_PASSWORD

    if DB_SECRET_ID:
        from google.cloud import secretmanager

        creds = _build_creds()
        client = secretmanager.SecretManagerServiceClient(credentials=creds)
        name = client.secret_version_path(PROJECT_ID, DB_SECRET_ID, "latest")
        resp = client.access_secret_version(request={"name": name})
        DB_PASSWORD = resp.payload.data.decode("utf-8")
        return DB_PASSWORD

    raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")


def get_database_url() -> str:
    """
    DATABASE_URL wins when present. Otherwise localhost means a local SQLite
    file and anything else is a Postgres server reached through pg8000.
    """
    if DATABASE_URL:
        return DATABASE_URL

    if IS_LOCAL_DB:
        return LOCAL_DB_URL

    password = get_db_password()
    return f"postgresql+pg8000://{DB_USER}:{password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
    )
