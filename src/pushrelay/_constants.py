"""Internal constants for the upstream push networks."""

from __future__ import annotations

from pathlib import Path

# APNs (token addressed in the URL path)
APNS_HOST = "https://api.push.apple.com"
APNS_SANDBOX_HOST = "https://api.sandbox.push.apple.com"
APNS_JWT_TTL = 50 * 60  # seconds; APNs rejects provider tokens older than 60 min

# FCM HTTP v1 (token addressed in the request body)
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_TOKEN_URL = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
FCM_ASSERTION_LIFETIME = 3600  # seconds
FCM_TOKEN_TTL = 55 * 60  # seconds; Google access tokens last 60 min

# Store key spaces
DEVICE_KEY_PREFIX = "devices:"
CREDENTIAL_KEY_PREFIX = "credential:"

HTTP_TIMEOUT = 15  # seconds, per upstream request
DEFAULT_REFRESH_INTERVAL = 45 * 60  # seconds; shorter than either credential TTL

DATA_DIR = Path.home() / ".config" / "pushrelay"
