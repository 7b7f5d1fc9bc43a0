"""
Exception classes for EdgeGrid Python SDK
"""

from typing import Optional, Dict, Any


class EdgeGridSDKError(Exception):
    """Base exception for all EdgeGrid SDK errors"""
    
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (code: {self.error_code}, details: {self.details})"
        return f"{self.message} (code: {self.error_code})"


class ValidationError(EdgeGridSDKError):
    """Exception raised for invalid configuration values"""
    
    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class MissingCredentials(EdgeGridSDKError):
    """
    Exception raised when a request is signed before credentials are complete,
    or when a credential file or section cannot be found.
    """
    
    def __init__(self, message: str, error_code: str = "MISSING_CREDENTIALS", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class InvalidTimestampFormat(EdgeGridSDKError):
    """Exception raised when a timestamp cannot be rendered as YYYYMMDDTHH:MM:SS+0000"""
    
    def __init__(self, message: str, error_code: str = "INVALID_TIMESTAMP", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class InvalidCredentialEncoding(EdgeGridSDKError):
    """Exception raised when a token, secret or nonce cannot be placed in the auth header"""
    
    def __init__(self, message: str, error_code: str = "INVALID_ENCODING", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class CredentialFileError(EdgeGridSDKError):
    """Exception raised when a credential file exists but cannot be parsed"""
    
    def __init__(self, message: str, error_code: str = "CREDENTIAL_FILE_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class StageAnchorNotFound(EdgeGridSDKError):
    """Exception raised by StagePipeline.before/after when the anchor stage is absent"""
    
    def __init__(self, anchor: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Stage not found: {anchor}", "STAGE_ANCHOR_NOT_FOUND", details)
        self.anchor = anchor
