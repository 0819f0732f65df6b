from pydantic import BaseModel


class HealthCheck(BaseModel):
    status: str
    version: str
    timestamp: str
