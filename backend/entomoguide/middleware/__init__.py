# Middleware package init
"""
EntomoGuide Backend: Middleware Package
========================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Rate Limit] → [Logging] → [CORS] → Route Handler

    1. Request ID first, so even rate-limited responses carry X-Request-ID
       and every later log line has the id
    2. Rate Limit: only POST /login and POST /clientes
    3. Logging: measures the handler, reads the caller's claim afterwards
"""
