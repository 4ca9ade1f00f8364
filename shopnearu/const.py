VERSION = "0.3.0"

API_BASE_URL = "http://localhost:8080/api/v1"

# Fallback position (central Chennai) used whenever the host cannot supply one
DEFAULT_LATITUDE = 13.0827
DEFAULT_LONGITUDE = 80.2707

# Last-resort map centre when neither a position nor any shop is known
MAP_FALLBACK_CENTER = (20.5937, 78.9629)

RADIUS_CHOICES: tuple[int, ...] = (1000, 2000, 5000, 10000, 20000)
DEFAULT_RADIUS = 5000
DEFAULT_LIMIT = 20

# Geolocation
GEOLOCATION_TIMEOUT = 5.0    # seconds
GEOLOCATION_HIGH_ACCURACY = False

# HTTP
REQUEST_TIMEOUT = 5          # seconds, multiplied by attempt number for each retry
REQUEST_ATTEMPTS = 3

VIEW_MODE_LIST = "list"
VIEW_MODE_MAP = "map"
VIEW_MODES = (VIEW_MODE_LIST, VIEW_MODE_MAP)

# Provenance notices shown next to the results
NOTICE_PRECISE = "Using your device location for precise shop results."
NOTICE_FALLBACK_UNSUPPORTED = (
    "Location access is not available in this browser. "
    "Showing results near central Chennai as a fallback."
)
NOTICE_FALLBACK_DENIED = (
    "Unable to access your location. Showing a curated list near central Chennai. "
    "Enable location for personalised results."
)
NOTICE_DETECTING = "Detecting your location…"
NOTICE_NOT_SUPPORTED = "Location services are not supported in this browser."
NOTICE_ON_DEMAND_FAILED = "Unable to use your location. Continuing with fallback results."

QUERY_FAILED_MESSAGE = "Unable to fetch nearby shops right now."
MUTATION_FAILED_MESSAGE = "Failed to update subscription"
AUTH_REQUIRED_MESSAGE = "Please log in to subscribe to shops"
