# app/models/device.py
from pydantic import BaseModel


class DeviceEndpoint(BaseModel):
    token: str           # capability: nunca se loguea completo
    device_type: str     # android | ios | web
    user_id: str

    def short_token(self, length: int = 20) -> str:
        return self.token[:length]
