# app/errors.py


class PushDispatchError(Exception):
    """Base de todos los errores del servicio de push."""


class ConfigurationError(PushDispatchError):
    """Falta (o es inválido) un secreto/valor de configuración requerido."""


class InvalidPayloadError(PushDispatchError):
    """El evento entrante no es JSON válido o no tiene una forma reconocida."""


class SigningError(PushDispatchError):
    """No se pudo firmar la aserción (clave privada mal formada)."""


class TokenExchangeError(PushDispatchError):
    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class EndpointSendError(PushDispatchError):
    """
    Falló el envío a UN dispositivo. Nunca escala: se guarda en el
    DeliveryOutcome de ese endpoint.
    """

    def __init__(self, status_code: int, body: str):
        super().__init__(f"FCM respondió {status_code}")
        self.status_code = status_code
        self.body = body


class RegistryError(PushDispatchError):
    """Error leyendo/borrando en el registro de endpoints o en el ledger."""
