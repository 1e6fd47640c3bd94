class CredentialError(Exception):
    """A credential store call failed. ``message`` is safe to show to users."""

    default_message = "Authentication failed. Please try again."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentialsError(CredentialError):
    # Same message whether or not the email exists
    default_message = "Incorrect email address or password"


class DuplicateRegistrationError(CredentialError):
    default_message = "This email address is already registered"


class CredentialServiceUnavailable(CredentialError):
    """Network failure or timeout talking to the credential store."""
    default_message = "Authentication service temporarily unavailable"


class SessionIndeterminate(Exception):
    """The session is still being loaded, so it is neither present nor absent yet."""

    def __init__(self):
        super().__init__("Session is still loading")
