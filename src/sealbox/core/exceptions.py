"""
Exceptions for Sealbox
Every component re-raises primitive-library errors as one of these, so callers
only ever need to catch SealboxError.
"""

# Shown to whoever supplied the passphrase; logs carry the precise kind.
GENERIC_CREDENTIAL_MESSAGE = "incorrect passphrase or corrupted data"


class SealboxError(Exception):
    # general container for errors
    pass


class DerivationFailed(SealboxError):
    # raised when the KDF primitive fails (e.g. memory exhaustion)
    pass


class MalformedEnvelope(SealboxError):
    # raised when a blob cannot be parsed (too short, bad padding)
    pass


class AuthenticationFailed(SealboxError):
    # raised when the AEAD tag does not verify
    pass


class InvalidPassphrase(SealboxError):
    # raised when the derived verifier does not match the stored one

    def __init__(self, message=GENERIC_CREDENTIAL_MESSAGE):
        super().__init__(message)


class UnwrapFailed(SealboxError):
    # raised on a key wrap integrity failure

    def __init__(self, message=GENERIC_CREDENTIAL_MESSAGE):
        super().__init__(message)


class KeyTypeMismatch(SealboxError):
    # raised when a key's algorithm or usage doesn't fit the operation
    pass


class HybridDecryptionFailed(SealboxError):
    # single opaque error for any hybrid open failure
    pass


class IOFailure(SealboxError):
    # raised when reading a source or writing a destination stream fails
    pass


class KeyFormatError(SealboxError):
    # raised when a PEM or key object cannot be loaded
    pass


class ProfileNotFoundError(SealboxError):
    # raised when the user has no stored profile
    pass


class ProfileExistsError(SealboxError):
    # raised when creating a profile that already exists
    pass


class SessionLockedError(SealboxError):
    # raised when the session holds no key (locked or expired)
    pass


class EphemeralKeyNotFound(SealboxError):
    # raised when an ephemeral key id is unknown, expired or already used
    pass
