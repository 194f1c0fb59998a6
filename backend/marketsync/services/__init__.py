# Services package init
"""
MarketSync Backend — Services Layer
=====================================

Stores:
    - PersistentStore (store_base): abstract async document store + the
      Subscription change-feed channel
    - MemoryDocumentStore: process-local backend (development, tests)
    - SqlDocumentStore: SQLAlchemy async backend with a polling change feed

Managers (built once per app by marketsync.dependencies):
    - IdentityStoreAdapter: typed access to user profiles
    - FollowGraphManager: idempotent follow/unfollow + optimistic toggle
    - FeedComposer: catalog and personalized feeds
    - ConversationManager: one conversation per pair, appends, live streams
    - Registrar: services, posts and bookings

Client-side state:
    - OptimisticMirror: pending/confirmed/rolled-back id set
    - SavedItemsLedger: session bookmarks

Managers receive their store and adapter through their constructors; none
of them reaches for a module-level singleton.
"""
