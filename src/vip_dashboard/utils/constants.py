"""Application-wide constants."""

# Independently synced collections, in the order they are reported
ENTITY_TICKETS = "tickets"
ENTITY_CLIENTS = "clients"
ENTITY_HARDWARE = "hardware"
ENTITY_INVENTORY_EVENTS = "inventory_events"

ENTITY_KINDS = [
    ENTITY_TICKETS,
    ENTITY_CLIENTS,
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
]

# Change-notification topics that are not sync kinds
TOPIC_ATTACHMENTS = "attachments"
TOPIC_SYNC_METADATA = "sync_metadata"
TOPIC_PENDING_ADJUSTMENTS = "pending_adjustments"

TICKET_STATUSES = ["open", "pending", "resolved", "closed"]

TICKET_STATUS_LABELS = {
    "open": "Open",
    "pending": "Pending",
    "resolved": "Resolved",
    "closed": "Closed",
}

# REST paths
API_PREFIX = "/api/v1"
PATH_TICKETS = f"{API_PREFIX}/tickets"
PATH_ACTIVE_TICKETS = f"{API_PREFIX}/tickets/active"
PATH_CLIENTS = f"{API_PREFIX}/clients"
PATH_HARDWARE = f"{API_PREFIX}/hardware"
PATH_INVENTORY_EVENTS = f"{API_PREFIX}/inventory/events"
PATH_INVENTORY_RECEIVE = f"{API_PREFIX}/inventory/receive"
PATH_INVENTORY_ADJUST = f"{API_PREFIX}/inventory/adjust"
PATH_AUTH_TOKEN = "/auth/token"

SYNC_PATHS = {
    ENTITY_TICKETS: PATH_TICKETS,
    ENTITY_CLIENTS: PATH_CLIENTS,
    ENTITY_HARDWARE: PATH_HARDWARE,
    ENTITY_INVENTORY_EVENTS: PATH_INVENTORY_EVENTS,
}

# Credential store keys
CREDENTIAL_API_KEY = "apiKey"
CREDENTIAL_ACCESS_TOKEN = "accessToken"
CREDENTIAL_REFRESH_TOKEN = "refreshToken"
CREDENTIAL_TOKEN_EXPIRY = "tokenExpiry"

CREDENTIAL_KEYS = [
    CREDENTIAL_API_KEY,
    CREDENTIAL_ACCESS_TOKEN,
    CREDENTIAL_REFRESH_TOKEN,
    CREDENTIAL_TOKEN_EXPIRY,
]

TOKEN_CREDENTIAL_KEYS = [
    CREDENTIAL_ACCESS_TOKEN,
    CREDENTIAL_REFRESH_TOKEN,
    CREDENTIAL_TOKEN_EXPIRY,
]

# Value shown for null client attributes
EMPTY_ATTRIBUTE_VALUE = "—"
