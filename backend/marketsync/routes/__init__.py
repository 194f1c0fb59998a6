# Routes package init
"""
MarketSync Backend — API Routes Package
=========================================

Route Inventory:
    - health.py:         GET  /health
    - follows.py:        GET/PUT/DELETE /api/users/{user_id}/follows[/{provider_id}]
    - feed.py:           GET  /api/feed/catalog, /api/feed/personalized,
                              /api/feed/items/{item_id}
    - conversations.py:  POST /api/conversations
                         GET  /api/conversations/{id}
                         POST /api/conversations/{id}/messages
                         GET  /api/users/{user_id}/conversations
                         WS   /api/conversations/{id}/stream
    - registrar.py:      POST /api/services, /api/posts, /api/bookings

Routes stay thin: they resolve a manager from the service container, call
it, and shape the response. Errors propagate to the handlers in main.py.
"""
