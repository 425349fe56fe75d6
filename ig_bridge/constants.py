"""Fixed protocol values for the Instagram private API."""

API_URL = "https://i.instagram.com/api/v1/"
API_HOST = "i.instagram.com"

ACCEPT_ENCODING = "gzip, deflate"
ACCEPT_LANGUAGE = "en-US"
CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"
X_IG_CAPABILITIES = "3brTBw=="
X_IG_CONNECTION_TYPE = "WIFI"
X_FB_HTTP_ENGINE = "Liger"

# Connection speed header is randomised per call, in kbps: [1000, 3700).
CONNECTION_SPEED_MIN = 1000
CONNECTION_SPEED_MAX = 3700

# Sent with every photo upload; quality must match what we re-encode at.
IMAGE_COMPRESSION = '{"lib_name":"jt","lib_version":"1.3.0","quality":"87"}'
IMAGE_QUALITY = 87

# Video uploads must be split into exactly this many chunks.
VIDEO_CHUNK_COUNT = 4
VIDEO_EXTENSION_FALLBACK = "mp4"

CSRF_COOKIE = "csrftoken"
