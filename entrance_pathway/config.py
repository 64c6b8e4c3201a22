"""Runtime configuration read from the environment (and a local .env file)."""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./entrance_pathway.db")

# Secret shared with the identity provider that signs bearer tokens
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE") or None

CORS_ORIGIN = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGIN", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# off | hard | auto_complete
EXAM_EXPIRY_POLICY = os.getenv("EXAM_EXPIRY_POLICY", "hard").lower()
EXAM_EXPIRY_GRACE_SECONDS = int(os.getenv("EXAM_EXPIRY_GRACE_SECONDS", "30"))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = 100
