"""Shared constants for the kartpace engine."""

from __future__ import annotations

# Laps slower than this are incidents or timing-system errors, never kart pace.
LAP_TIME_THRESHOLD_MS = 60_000

STALE_LAP_THRESHOLD_S = 5 * 60

LAP_HISTORY_LIMIT = 20
GAP_HISTORY_LIMIT = 10

RESTART_LAP_THRESHOLD = 2
RESTART_HISTORY_THRESHOLD = 3

# Roughly 30,000 lap records at typical venue session sizes.
MAX_SESSIONS = 140

SAVE_EVERY_N_LAPS = 10
AUTO_BACKUP_INTERVAL_S = 10 * 60
MAX_RECORDED_SESSIONS = 20

UNKNOWN_TRACK = "unknown"
DEFAULT_SESSION_NAME = "default"

TIMESTAMP_THRESHOLDS: dict[str, int] = {
    "kart_analysis": 5 * 60,
    "race_display": 10 * 60,
    "summary_display": 10 * 60,
    "results_display": 30 * 60,
}

STORAGE_KEYS: dict[str, str] = {
    "settings": "kartingTimerSettings",
    "personal_records": "kartingPersonalRecords",
    "kart_analysis": "kartAnalysisData",
    "kart_analysis_backup": "kartAnalysisBackup",
    "kart_analysis_auto_backup": "kartAnalysisAutoBackup",
    # Copy of a primary analysis blob that could not be read at all.
    "kart_analysis_unreadable": "kartAnalysisUnreadable",
    "session_history": "karting_session_history",
}
