# dbchat/errors.py


class DbChatError(Exception):
    """Base class for every error the service reports to callers."""

    kind = "error"


class ValidationError(DbChatError):
    kind = "validation"


class UnsupportedTypeError(ValidationError):
    kind = "unsupported_type"


class DecryptionError(DbChatError):
    kind = "decryption"


class DbConnectionError(DbChatError):
    kind = "connection"


class ModelGatewayError(DbChatError):
    kind = "model_gateway"


class ChartRenderError(DbChatError):
    kind = "chart"
