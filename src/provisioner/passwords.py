import secrets

# 32 random bytes, 43 URL-safe characters once encoded
DEFAULT_PASSWORD_BYTES = 32


def generate_password(byte_length: int = DEFAULT_PASSWORD_BYTES) -> str:
    """Generate a fresh random password from the OS CSPRNG.

    The result is URL-safe base64 text, so it can be placed in a connection URL
    as-is.
    """
    if byte_length <= 0:
        raise ValueError(f"Password length must be positive, got {byte_length}")
    return secrets.token_urlsafe(byte_length)
