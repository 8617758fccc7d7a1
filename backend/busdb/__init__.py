# backend/busdb/__init__.py
"""
Tenant-scoped directory and authorization core for the school-transport
admin panel.

ORM tables live in busdb/apps/*/models.py; Alembic registers them in
busdb/alembic/env.py. Nothing is imported here so that pure helpers such
as `busdb.utils.rut` stay usable without a database configured.
"""
