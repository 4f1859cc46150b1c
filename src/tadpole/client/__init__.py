from .cache import CacheState, ClientCache
from .gateway import HttpStoreGateway, LocalStoreGateway, StoreGateway
from .sync import Outcome, SyncEngine, SyncSettings, TagSync, TaskSync

__all__ = [
    "CacheState",
    "ClientCache",
    "HttpStoreGateway",
    "LocalStoreGateway",
    "Outcome",
    "StoreGateway",
    "SyncEngine",
    "SyncSettings",
    "TagSync",
    "TaskSync",
]
