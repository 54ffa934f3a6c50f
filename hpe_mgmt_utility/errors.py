"""Exception types shared by the management clients and procedures."""


class HpeMgmtError(Exception):
    """Base class for every failure raised by this package."""


class RemoteSessionError(HpeMgmtError):
    """Connecting or logging in to an appliance failed."""

    def __init__(self, host, reason):
        self.host = host
        self.reason = reason
        super().__init__(f"{host}: {reason}")


class ApplianceSelectionError(HpeMgmtError):
    """No appliance, or more than one, matched the requested scope."""


class VendorCallError(HpeMgmtError):
    """A query or command returned a non-success status.

    ``status`` is None when the failure came from the OneView SDK, which
    does not expose the HTTP status.
    """

    def __init__(self, method, url, status, body=""):
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        if status is None:
            super().__init__(f"{method} {url} failed: {body}")
        else:
            super().__init__(f"{method} {url} failed with status {status}")


class OaApiError(HpeMgmtError):
    """The Onboard Administrator answered with a SOAP fault."""

    def __init__(self, operation, messages):
        self.operation = operation
        self.messages = list(messages)
        super().__init__(f"{operation}: {'; '.join(self.messages) or 'unknown fault'}")


class ConfigurationError(HpeMgmtError):
    """Site configuration or input data cannot be used."""


class PollTimeout(HpeMgmtError):
    """A bounded wait for a device state gave up."""

    def __init__(self, description, attempts):
        self.description = description
        self.attempts = attempts
        super().__init__(f"gave up waiting for {description} after {attempts} attempts")
