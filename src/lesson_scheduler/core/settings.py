import logging
import os
from pathlib import Path


def _load_dotenv(dotenv_path: Path) -> None:
    if not dotenv_path.exists():
        return
    for raw_line in dotenv_path.read_text(encoding='utf-8').splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' not in line:
            continue
        key, value = line.split('=', 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    val = value.strip().lower()
    if val in {'1', 'true', 'yes', 'y', 'on'}:
        return True
    if val in {'0', 'false', 'no', 'n', 'off'}:
        return False
    return default


def _parse_int(value: str | None, default: int | None) -> int | None:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_log_level(value: str | None, default: int) -> int:
    if not value:
        return default
    val = value.strip()
    if val.isdigit():
        return int(val)
    level = logging.getLevelName(val.upper())
    return level if isinstance(level, int) else default


_ROOT = Path(__file__).resolve().parents[3]
_load_dotenv(_ROOT / '.env')

DATABASE_URL = os.getenv('DATABASE_URL')
ENV = os.getenv('ENV', 'dev').strip().lower()
AUTO_CREATE_SCHEMA = _parse_bool(os.getenv('AUTO_CREATE_SCHEMA', '0'), False)
LOG_LEVEL = _parse_log_level(os.getenv('LOG_LEVEL'), logging.INFO)
DB_POOL_SIZE = _parse_int(os.getenv('DB_POOL_SIZE', ''), 5)
DB_MAX_OVERFLOW = _parse_int(os.getenv('DB_MAX_OVERFLOW', ''), 10)

# Rejects a slot when any lesson already booked there is on an individual plan.
# Off until the product side confirms it.
INDIVIDUAL_PLAN_EXCLUSIVE = _parse_bool(os.getenv('INDIVIDUAL_PLAN_EXCLUSIVE', '0'), False)
