class GatewayError(Exception):
    code = "gateway_error"
    http_status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_response(self) -> dict:
        return {"error": self.code}


class PersistenceError(GatewayError):
    """The profile store could not be read or written."""

    code = "persistence_unavailable"
    http_status = 500


class BillingProviderError(GatewayError):
    """Stripe answered a billing API call with a non-2xx status."""

    code = "billing_provider_error"
    http_status = 502

    def __init__(self, message: str = "", provider_status: int | None = None):
        super().__init__(message)
        self.provider_status = provider_status

    def to_response(self) -> dict:
        return {"error": self.code, "provider_status": self.provider_status}
