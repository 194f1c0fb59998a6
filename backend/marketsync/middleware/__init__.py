# Middleware package init
"""
MarketSync Backend — HTTP Middleware
======================================

Request path (outermost first):
    [Request ID] → [Access Log] → [GZip] → [CORS] → route handler

    - Request ID tags the request so every log line and error body can be
      correlated with the X-Request-ID response header.
    - The access log reads that id, so it must run inside Request ID.

Both are Starlette BaseHTTPMiddleware subclasses and only see HTTP
requests; the conversation WebSocket stream bypasses them.
"""
