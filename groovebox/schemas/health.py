from pydantic import BaseModel


class ServiceInfoOut(BaseModel):
    service: str
    version: str
    status: str


class HealthOut(BaseModel):
    status: str
    rooms: int
    users: int
    uptime: float
