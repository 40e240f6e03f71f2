"""Actor identifiers used when an operation is not attributed to a user."""

from uuid import UUID

# Audit columns require a creator; automated transitions record this id.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")
