"""Constants for the Parcel Tracker integration."""

DOMAIN = "parcel_tracker"
INTEGRATION_NAME = "Parcel Tracker"

# Device shared by all entities
DEVICE_IDENTIFIER = (DOMAIN, "parcel_tracker_device")
DEVICE_NAME = "Parcel Tracker"

# Tracking service routes
TRACK_CARRIER_ENDPOINT = "/api/track-{carrier}"
TRACK_ENDPOINT = "/api/track"
TRACK_LOOKUP_ENDPOINT = "/api/track/{carrier}/{tracking_number}"
TRACK_LEGACY_ENDPOINT = "/api/track-ups"

# Config entry keys
CONF_BASE_URL = "base_url"
CONF_UPDATE_INTERVAL = "update_interval"

# Update intervals
DEFAULT_UPDATE_INTERVAL = 4 * 60 * 60  # 4 hours
MIN_UPDATE_INTERVAL = 15 * 60

# Storage
STORAGE_KEY = f"{DOMAIN}.shipments"
STORAGE_VERSION = 1

# Ledger policy
MAX_SHIPMENTS = 20
RETENTION_DAYS = 5
UNKNOWN_CARRIER = "unknown"

# Extraction
KEYWORD_LINE_LIMIT = 5

# Entity attributes
ATTR_TRACKING_NUMBER = "tracking_number"
ATTR_CARRIER = "carrier"
ATTR_STATUS = "status"
ATTR_STATUS_TEXT = "status_text"
ATTR_LAST_UPDATE = "last_update"
ATTR_STEPS = "steps"
ATTR_STEP_COUNT = "step_count"
ATTR_LABEL = "label"

# Service names and fields
SERVICE_TRACK = "track"
SERVICE_REMOVE = "remove"
SERVICE_REFRESH = "refresh"
SERVICE_LIST = "list"

FILTER_ALL = "all"
FILTER_DELIVERED = "delivered"
FILTER_NOT_DELIVERED = "not-delivered"

# User-facing failure message
TRACKING_FAILED_MESSAGE = "Failed to track shipment. Please try again."
