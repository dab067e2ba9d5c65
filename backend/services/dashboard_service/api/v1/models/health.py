"""Database health response model."""

from pydantic import BaseModel


class DatabaseHealthResponse(BaseModel):
    """
    Response model for GET /health/database.

    Attributes:
        status (str): "healthy" when the master directory answered.
        master_database (str): Name of the master directory database.
        tenant_pools (int): Tenant pools currently cached.
        external_pools (int): External-account pools currently cached.
    """

    status: str
    master_database: str
    tenant_pools: int
    external_pools: int
