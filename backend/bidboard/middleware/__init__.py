"""
BidBoard Backend - Middleware Package
======================================

Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

The request id is assigned first so the access log line and any error body
carry it.
"""
