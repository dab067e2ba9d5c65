"""
Dashboard Service API v1 Package

Version 1 provides:
    - Tenant provisioning, lookup and deactivation
    - Owner domain resolution
    - Background customer sync of linked partner-portal accounts
    - Database health

All endpoints are prefixed with /api/v1. Failures use the JSON error envelope
``{"success": false, "error": "..."}``.
"""
