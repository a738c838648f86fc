"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Regional fallback  (Punjab center, used when no fix is available)
# ------------------------------------------------------------------

DEFAULT_FALLBACK_LAT = 31.1471
DEFAULT_FALLBACK_LNG = 75.3412

# ------------------------------------------------------------------
# Simulation
# ------------------------------------------------------------------

DEFAULT_TICK_INTERVAL = 3.0
#: Speed units per coordinate degree of displacement per tick.
DEFAULT_SPEED_SCALE = 100_000.0
#: Half-width of the uniform heading jitter, in degrees.
DEFAULT_JITTER_DEGREES = 10.0
ETA_MIN_MINUTES = 1
ETA_MAX_MINUTES = 19

# ------------------------------------------------------------------
# Location sources
# ------------------------------------------------------------------

DEFAULT_GPS_PUSH_INTERVAL = 1.0
DEFAULT_GPS_TIMEOUT = 10.0
DEFAULT_NETWORK_POLL_INTERVAL = 10.0
DEFAULT_NETWORK_OFFSET_DEGREES = 0.01
#: Seconds an external fix keeps ownership of an entity's position.
DEFAULT_EXTERNAL_FIX_TTL = 30.0

DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_KEEPALIVE = 60
DEFAULT_MQTT_TOPIC = "fleet/position"

# ------------------------------------------------------------------
# Camera
# ------------------------------------------------------------------

SELECT_ZOOM = 15.0
SELECT_TILT = 60.0
SELECT_DURATION_MS = 2000
FOLLOW_DURATION_MS = 500
USER_ZOOM = 12.0
USER_TILT = 0.0

# ------------------------------------------------------------------
# Emergency escalation
# ------------------------------------------------------------------

DEFAULT_SOS_COUNTDOWN = 5
DEFAULT_SOS_TICK_INTERVAL = 1.0
EMERGENCY_NUMBER = "100"

# ------------------------------------------------------------------
# Persistence keys
# ------------------------------------------------------------------

ENTITIES_KEY = "fleet.entities"
SESSION_KEY = "fleet.session"
