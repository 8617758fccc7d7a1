# backend/busdb/apps/assets/__init__.py
"""Record images: blob storage and the replace / reclaim lifecycle."""
