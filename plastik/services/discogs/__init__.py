from plastik.services.discogs.client import DiscogsClient
from plastik.services.discogs.inventory import InventoryService, build_release_batcher

__all__ = ["DiscogsClient", "InventoryService", "build_release_batcher"]
