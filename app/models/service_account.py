# app/models/service_account.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


class ServiceAccountKey(BaseModel):
    # se carga una vez al arrancar y no se toca más
    model_config = ConfigDict(frozen=True)

    client_email: str          # issuer
    private_key: str           # PEM PKCS#8
    project_id: str
    token_uri: str = GOOGLE_TOKEN_URI   # audience
    scope: str = FCM_SCOPE


class AccessCredential(BaseModel):
    access_token: str
    expires_at: datetime
