"""Internal constants shared across the library."""

#: Reserved prefix for client-generated message ids that the server has not
#: acknowledged yet. Server-assigned ids never start with it.
PLACEHOLDER_PREFIX = "temp-"

#: Default lifetime of a cached user profile, in seconds.
DEFAULT_USER_TTL_SECONDS: float = 5 * 60

#: Default window within which a pushed message may supersede a local placeholder.
DEFAULT_PLACEHOLDER_TOLERANCE_MS = 60_000

#: How far a superseding message may predate its placeholder (clock skew between
#: client and server). Older same-text messages are earlier sends, not echoes.
PLACEHOLDER_CLOCK_SKEW_MS = 5_000

#: Conversation previews are cut to this many characters.
DEFAULT_PREVIEW_LENGTH = 100
