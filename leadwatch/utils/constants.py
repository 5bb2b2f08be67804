"""Constants and default values."""

# Fixed deployment offset (UTC+05:30, no DST)
DEFAULT_UTC_OFFSET_MINUTES = 330

# Daily report schedule
DEFAULT_GRACE_MINUTES = 20

# Rollover fires this long after local midnight
ROLLOVER_BUFFER_SECONDS = 60

# Polling
DEFAULT_POLL_INTERVAL = 60
DEFAULT_FETCH_TIMEOUT = 15
MAX_FOLLOWUP_EVENTS = 200
INBOX_FETCH_LIMIT = 20

# Notification log
MAX_NOTIFICATIONS = 50
NOTIFICATION_KINDS = ("info", "warning", "success", "error")

# Settings toggles (all default to enabled)
SETTING_REMINDERS = "reminders"
SETTING_ASSIGNMENTS = "assignments"
SETTING_FOLLOWUPS = "followups"
SETTING_ALERTS = "alerts"
SETTING_NAMES = (SETTING_REMINDERS, SETTING_ASSIGNMENTS, SETTING_FOLLOWUPS, SETTING_ALERTS)

ADMIN_ROLE = "admin"
