# backend/busdb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Administrator records and their ACTIVE / INACTIVE / DELETED lifecycle
- Identity-provider accounts (credentials, sign-in, secret changes)
- Scope resolution: who may see and change which institution's records
- Public auth endpoints (login, register, profile, first super admin)
- Admin endpoints (manage administrators)
"""
