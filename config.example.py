# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "RENT_APP_NAME": "App display name (default: rent-scheduler).",
    "RENT_LOG_LEVEL": "Console logging level (default: INFO).",
    # Switches
    "RENT_CONSOLE_ENABLED": "Run the admin console in the foreground (true/false, default: true).",
    "RENT_SCHEDULER_ENABLED": "Start the task scheduler (true/false, default: true).",
    # Paths (gitignored)
    "RENT_DATA_DIR": "Local data directory, also holds the log file (default: .local/rent_scheduler).",
    "RENT_DB_PATH": "RentalStore SQLite path (default: <data_dir>/rentals.sqlite3).",
    # Scheduler tuning
    "RENT_TICK_SECONDS": "Seconds between due-task checks (default: 60).",
    "RENT_RETRY_DELAY_SECONDS": "Delay before retrying a failed task (default: 3600).",
    "RENT_GENERATION_HOUR": "Local hour of the daily rent generation (default: 9).",
    "RENT_RECALCULATION_HOUR": "Local hour of the daily status recalculation (default: 8).",
}
