"""
Dashboard Service Business Logic Package

Modules:
    - customer_sync: Background customer sync of linked partner-portal accounts
"""
