from topicast.services.feeds import CyclicFeed, FeedRegistry, TopicFeed, default_feeds
from topicast.services.registry import CapacityExceeded, SessionNotFound, SubscriptionRegistry
from topicast.services.scheduler import BroadcastScheduler
from topicast.services.server import PushServer
from topicast.services.server_state import get_server, set_server
from topicast.services.session import ClientSession

__all__ = [
    "BroadcastScheduler",
    "CapacityExceeded",
    "ClientSession",
    "CyclicFeed",
    "FeedRegistry",
    "PushServer",
    "SessionNotFound",
    "SubscriptionRegistry",
    "TopicFeed",
    "default_feeds",
    "get_server",
    "set_server",
]
