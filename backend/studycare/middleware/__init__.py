"""
StudyCare Backend — Middleware Package
========================================

Middleware Chain (outermost first):
    Request → [Metrics] → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Metrics sees every request, including rate-limited ones
    2. Rate Limit rejects abusive clients before any work is done
    3. Request ID sets the correlation ID used by every later log line
    4. Logging records method, path, status and duration
"""
