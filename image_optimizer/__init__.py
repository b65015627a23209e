"""
Image Optimizer Service

This package implements a FastAPI service that optimizes one uploaded image
per request:
- Decodes JPEG, PNG and GIF uploads
- Scales images down to a maximum width, never enlarging them
- Re-encodes to WebP, AVIF, JPEG or PNG at a chosen quality
- Returns the bytes directly or a short-lived URL, with size savings

Requests are authenticated with a shared API key and rate limited per client.
"""
__version__ = "1.0.0"

__all__ = ['__version__']
