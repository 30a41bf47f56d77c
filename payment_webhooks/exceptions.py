class WebhookError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidPayload(WebhookError):
    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, status_code=400)


class InvalidSignature(WebhookError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=400)


class GatewayNotConfigured(WebhookError):
    def __init__(self, gateway: str):
        super().__init__(f"{gateway} webhook not configured", status_code=503)
