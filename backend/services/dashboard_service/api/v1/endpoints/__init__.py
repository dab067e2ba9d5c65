"""
Dashboard Service API v1 Endpoints Package

Endpoints:
    - tenants.py: Tenant provisioning, lookup and deactivation
    - owner.py: Identity to owning tenant
    - sync.py: Customer sync start, stop and progress
    - health.py: Database health
"""
