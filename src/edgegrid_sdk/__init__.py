"""
EdgeGrid Python SDK
EG1-HMAC-SHA256 request signing for Akamai {OPEN} APIs
"""

from .version import __version__
from .exceptions import (
    EdgeGridSDKError,
    ValidationError,
    MissingCredentials,
    InvalidTimestampFormat,
    InvalidCredentialEncoding,
    CredentialFileError,
    StageAnchorNotFound,
)
from .signing import (
    Credentials,
    CanonicalRequest,
    EdgeGridSigner,
    create_signer,
    create_from_credentials_file,
    sign,
    generate_nonce,
    generate_timestamp,
)
from .config import (
    EdgeRcSection,
    load_edgerc,
)
from .http_clients import (
    EdgeGridClient,
    ClientConfig,
    create_client,
    StagePipeline,
    Placement,
    MessageFormatter,
    history,
)

__all__ = [
    '__version__',
    # Exceptions
    'EdgeGridSDKError',
    'ValidationError',
    'MissingCredentials',
    'InvalidTimestampFormat',
    'InvalidCredentialEncoding',
    'CredentialFileError',
    'StageAnchorNotFound',
    # Signing
    'Credentials',
    'CanonicalRequest',
    'EdgeGridSigner',
    'create_signer',
    'create_from_credentials_file',
    'sign',
    'generate_nonce',
    'generate_timestamp',
    # Credential files
    'EdgeRcSection',
    'load_edgerc',
    # HTTP
    'EdgeGridClient',
    'ClientConfig',
    'create_client',
    'StagePipeline',
    'Placement',
    'MessageFormatter',
    'history',
]
