"""
Dashboard Service API Package

This package contains the API layer for the dashboard service, including
endpoints, request/response models, and request dependencies.

Package Structure:
    - dependencies.py: Registry access, identity and account id extraction
    - v1/: Version 1 API implementation
        - api.py: Router aggregation
        - endpoints/: API endpoint handlers
        - models/: Pydantic request/response models
"""
