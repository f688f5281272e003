"""
Vault Exception Classes
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class EmptyPasswordError(VaultError):
    """Raised when a password is empty or whitespace-only"""
    pass


class AuthenticationError(VaultError):
    """Raised when a password does not match the stored digest"""
    pass


class PasswordAlreadySetError(VaultError):
    """Raised when setting the initial password a second time"""
    pass


class LockedError(VaultError):
    """Raised when bookmarks are accessed while the vault is locked"""
    pass


class PositionError(VaultError, IndexError):
    """Raised when a bookmark position is outside [0, length)"""
    pass


class DecryptionError(VaultError):
    """Raised when a ciphertext, nonce and key do not belong together"""
    pass


class StorageError(VaultError):
    """Raised when the persistent store cannot be read or written"""
    pass
