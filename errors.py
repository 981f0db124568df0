class CertificateError(Exception):
    """Base class for every failure raised while producing certificates."""


class ProfileInputError(CertificateError):
    pass


class ConfigError(CertificateError):
    pass


class UnknownReasonError(CertificateError, ValueError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Unknown reason code: '{reason}'.")
        self.reason = reason


class ImageEncodingError(CertificateError):
    pass


class RenderError(CertificateError):
    pass


class DeliveryError(CertificateError):
    pass
