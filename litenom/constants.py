# Constants
DEFAULT_DATABASE_FILE = 'litenom.db3'
IDENTITY_FIELD = 'id'
IDENTITY_COLUMN = 'Id'
FOREIGN_KEY_SUFFIX = 'Id'
ENV_PREFIX = 'LITENOM_'
SAVEPOINT_PREFIX = 'litenom_sp'
INDEX_PREFIX = 'ix'
NOT_PERSISTED = 0

# Status messages
STATUS_INSERTED = '{count} row(s) inserted'
STATUS_UPDATED = '{count} row(s) updated'
STATUS_DELETED = '{count} row(s) deleted'
STATUS_FOUND = '{count} row(s) found'
STATUS_CASCADE_SAVED = '{count} row(s) written with children'
STATUS_CASCADE_DELETED = '{count} row(s) deleted with children'
STATUS_ERROR = 'Error: {message}'
