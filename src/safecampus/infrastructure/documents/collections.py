"""Document collection names."""

SOS_EVENTS = "sos_events"
SOS_SESSIONS = "sos_sessions"
# Keyed by user id; exists while the user has an unresolved SOS
SOS_ACTIVE_USERS = "sos_active_users"
SAFE_WALKS = "safe_walk"
USERS = "users"
