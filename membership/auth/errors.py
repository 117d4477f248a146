"""Error taxonomy shared by the store, the hasher and the signup/signin workflow."""

from __future__ import annotations


class AccountError(Exception):
    """Base error. `kind` is the stable client-facing name, `status_code` its HTTP mapping."""

    kind = "account_error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class InvalidInput(AccountError):
    kind = "invalid_input"
    status_code = 400


class ConflictError(AccountError):
    kind = "conflict"
    status_code = 409

    def __init__(self, message: str = "", *, field: str = "") -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class InvalidCredentials(AccountError):
    kind = "invalid_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class InvalidState(AccountError):
    kind = "invalid_state"
    status_code = 400

    def __init__(self, message: str = "Invalid OAuth state") -> None:
        super().__init__(message)


class InvalidIdentity(AccountError):
    kind = "invalid_identity"
    status_code = 403


class IdentityProviderError(AccountError):
    kind = "identity_provider_error"
    status_code = 502


class HashingError(AccountError):
    kind = "hashing_error"
    status_code = 500


class StoreError(AccountError):
    kind = "store_error"
    status_code = 500


class DuplicateUsername(StoreError):
    kind = "duplicate_username"
    status_code = 409


class DuplicateMembershipID(StoreError):
    kind = "duplicate_membership_id"
    status_code = 409


class AccountNotFound(StoreError):
    kind = "not_found"
    status_code = 404
