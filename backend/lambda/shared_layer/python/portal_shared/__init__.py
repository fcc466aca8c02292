"""portal_shared — Shared store layer for the client-status portal Lambdas.

Provides:
    - Live-data document backends (local file, DynamoDB, GitHub contents API)
    - Locked load/mutate/save document store with conflict retry
    - Message and status stores over the live-data document
    - Backend selection from deployment configuration
    - HTTP response helpers with CORS
"""

__version__ = "1.0.0"
