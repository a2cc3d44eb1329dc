"""Direct Line API client.

Usage:
    from chatline.client import DirectLineClient

    async with DirectLineClient() as client:
        grant = await client.create_conversation(secret)
        batch = await client.fetch_activities(grant.conversation_id, grant.token)
"""

from chatline.client.client import DirectLineClient, DirectLineClientError
from chatline.client.models import (
    Activity,
    ActivitySet,
    ChannelAccount,
    ConversationGrant,
    ReconnectGrant,
    TokenGrant,
)

__all__ = [
    "Activity",
    "ActivitySet",
    "ChannelAccount",
    "ConversationGrant",
    "DirectLineClient",
    "DirectLineClientError",
    "ReconnectGrant",
    "TokenGrant",
]
