import hashlib
import json
import re
import secrets
import string
from pathlib import Path

from clipq.config import DATA_DIR
from clipq.errors import InvalidInput

URL_RE = re.compile(r"https?://[^\s]+")
EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")

PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"
HASH_ALGORITHMS = ("sha256", "sha1", "md5", "default")


def calculate_hash(text: str, algorithm: str = "sha256") -> str:
    data = text.encode("utf-8")
    if algorithm == "default":
        return hashlib.blake2b(data, digest_size=8).hexdigest()
    if algorithm not in HASH_ALGORITHMS:
        raise InvalidInput(f"Unsupported hash algorithm: {algorithm}. Use {', '.join(HASH_ALGORITHMS)}")
    return hashlib.new(algorithm, data).hexdigest()


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs(db_path: str | Path | None = None) -> None:
    """Create the data directory, or the parent directory of ``db_path`` when given."""
    if db_path is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    elif str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def extract_urls(text: str) -> list[str]:
    return URL_RE.findall(text)


def extract_emails(text: str) -> list[str]:
    return EMAIL_RE.findall(text)


def extract_phone_numbers(text: str) -> list[str]:
    return PHONE_RE.findall(text)


def format_json(text: str) -> str:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInput("Input is not valid JSON", e) from e
    return json.dumps(parsed, indent=2)


def generate_password(length: int = 16) -> str:
    if length <= 0:
        raise InvalidInput(f"Password length must be positive, got {length}")
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))
