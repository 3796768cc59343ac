import os
import logging
from litenom.constants import DEFAULT_DATABASE_FILE, ENV_PREFIX

logger = logging.getLogger(__name__)

# Keys
DATABASE_PATH = 'database_path'
OPEN_FLAGS = 'open_flags'
ENFORCE_FOREIGN_KEYS = 'enforce_foreign_keys'
ATOMIC_CASCADES = 'atomic_cascades'


def _defaults():
    # imported here, database imports this module
    from litenom.database import OpenFlags
    return {
        DATABASE_PATH: os.environ.get(f'{ENV_PREFIX}DATABASE_PATH', DEFAULT_DATABASE_FILE),
        OPEN_FLAGS: OpenFlags.READ_WRITE | OpenFlags.CREATE | OpenFlags.SHARED_CACHE,
        ENFORCE_FOREIGN_KEYS: False,
        ATOMIC_CASCADES: True,
    }

_values = None
_lock_count = 0


def _get_values():
    global _values
    if _values is None:
        _values = _defaults()
    return _values


def get(key: str):
    values = _get_values()
    if key not in values:
        raise KeyError(f"Unknown configuration key '{key}'.")
    return values[key]


def set(key: str, value):
    values = _get_values()
    if key not in values:
        raise KeyError(f"Unknown configuration key '{key}'.")
    if _lock_count:
        message = f"Configuration key '{key}' cannot be changed while a database is open."
        logger.error(message)
        raise RuntimeError(message)
    values[key] = value
    logger.debug(f"Configuration key '{key}' set to {value!r}.")


def lock():
    global _lock_count
    _lock_count += 1


def unlock():
    global _lock_count
    if _lock_count:
        _lock_count -= 1


def is_locked() -> bool:
    return _lock_count > 0


def reset():
    global _values
    if _lock_count:
        raise RuntimeError("Configuration cannot be reset while a database is open.")
    _values = None
