TELEGRAM_API_BASE_URL = "https://api.telegram.org"
TELEGRAM_CALLBACK_DATA_LIMIT = 64
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
# Long-poll requests must outlive the server-side getUpdates timeout.
POLL_TIMEOUT_GRACE_SECONDS = 10.0
