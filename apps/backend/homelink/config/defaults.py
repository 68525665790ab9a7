from __future__ import annotations

APP_VERSION = "1.0.0"
BACKUP_VERSION = "1.0.0"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_BACKUP_FILE = "SmartHomeBackup.json"

DEFAULT_NETWORK_CHECK_SECONDS = 5.0
DEFAULT_STATUS_REFRESH_SECONDS = 30.0
DEFAULT_PERIODIC_TASK_SECONDS = 30.0
DEFAULT_GEOFENCE_DETECTION_SECONDS = 10.0

DEFAULT_NETWORK_ONLINE_PROBABILITY = 0.95
DEFAULT_ALERT_INJECTION_PROBABILITY = 0.3
DEFAULT_GEOFENCE_TRANSITION_PROBABILITY = 0.1

DEFAULT_MAX_RECENT_ALERTS = 50
DEFAULT_LOW_BATTERY_THRESHOLD = 20
DEFAULT_CRITICAL_BATTERY_THRESHOLD = 10
DEFAULT_HEALTHY_BATTERY_THRESHOLD = 50
DEFAULT_STALE_AFTER_HOURS = 24

DEFAULT_MAX_REQUESTS_PER_MINUTE = 60
DEFAULT_NOTIFICATION_COOLDOWN_SECONDS = 60.0
DEFAULT_NOTIFICATION_HISTORY = 100
DEFAULT_MAX_ANALYTICS_EVENTS = 1000
DEFAULT_MAX_REMOTE_BACKUPS = 5

# Seconds of simulated latency per remote operation. Reads are cheaper than
# writes, and writes are cheaper than capture/stream operations.
DEFAULT_LATENCY_SECONDS = {
    "sign_in": 1.5,
    "refresh": 0.5,
    "list_devices": 0.5,
    "get_device_status": 0.5,
    "get_recent_motion_alerts": 0.5,
    "list_geofences": 0.5,
    "get_motion_schedule": 0.5,
    "set_recording_mode": 1.0,
    "set_siren": 1.0,
    "set_privacy_mode": 1.0,
    "enable_motion_detection": 1.0,
    "disable_motion_detection": 1.0,
    "set_motion_schedule": 1.0,
    "create_geofence": 1.0,
    "update_geofence": 1.0,
    "delete_geofence": 1.0,
    "simulate_motion_alert": 0.5,
    "generate_report": 2.0,
    "create_backup": 2.0,
    "restore_backup": 2.0,
    "delete_backup": 1.0,
    "capture_snapshot": 2.0,
    "get_stream_url": 3.0,
}

DEFAULT_FAULT_RATES = {
    "get_stream_url": 0.5,
    "capture_snapshot": 0.5,
}
