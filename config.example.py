# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Endpoint URLs are deployment-specific; keep them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "ALLYHUB_APP_NAME": "App display name (default: allyhub).",
    "ALLYHUB_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "ALLYHUB_DATA_DIR": "Local data directory, also holds logs (default: .local/allyhub).",
    "ALLYHUB_CACHE_DB_PATH": "Cache SQLite path (default: <data_dir>/cache.sqlite3).",
    # Endpoints (empty => the collection shows a configuration error)
    "ALLYHUB_TASK_FETCH_URL": "POST endpoint returning the task collection.",
    "ALLYHUB_TASK_UPDATE_URL": "POST endpoint for task close/start/stop.",
    "ALLYHUB_NOTIFICATION_FETCH_URL": "POST endpoint returning the notification collection.",
    "ALLYHUB_NOTIFICATION_UPDATE_URL": "POST endpoint for notification read/unread/remove.",
    "ALLYHUB_ACTION_FETCH_URL": "POST endpoint returning the quick action definitions.",
    "ALLYHUB_CHAT_COLLECTION_URL": "POST endpoint returning the conversation list.",
    "ALLYHUB_CHAT_FETCH_URL": "POST endpoint returning one conversation's history.",
    "ALLYHUB_CHAT_CREATE_URL": "POST endpoint creating a conversation.",
    "ALLYHUB_CHAT_MESSAGE_URL": "POST endpoint sending a question to a conversation.",
    # Refresh (clamped to 5, 10 or 15; persisted values from /interval win)
    "ALLYHUB_TASKS_REFRESH_MINUTES": "Task refresh interval and cache lifetime (default: 10).",
    "ALLYHUB_NOTIFICATIONS_REFRESH_MINUTES": "Notification refresh interval (default: 10).",
    # Request payload
    "ALLYHUB_USER_ID": "userId sent with collection requests (default: default_user).",
    "ALLYHUB_FETCH_LIMIT": "limit sent with task/notification requests (default: 50).",
    # HTTP client
    "ALLYHUB_HTTP_CONNECT_TIMEOUT_SECONDS": "Connect timeout (default: 5).",
    "ALLYHUB_HTTP_READ_TIMEOUT_SECONDS": "Read timeout (default: 30).",
}
