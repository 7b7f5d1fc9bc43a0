"""
Credential file loading for the EdgeGrid Python SDK

Reads ``.edgerc`` INI files. Each section holds one credential set:

    [default]
    client_secret = xxxxxxxx
    host = akab-xxxxxxxx.luna.akamaiapis.net
    access_token = akab-xxxxxxxx
    client_token = akab-xxxxxxxx
    max-body = 131072
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..exceptions import MissingCredentials, CredentialFileError
from ..signing.types import Credentials, DEFAULT_MAX_BODY_SIZE
from ..signing.utils import normalize_host

logger = logging.getLogger(__name__)

EDGERC_ENV_VAR = "EDGERC"
DEFAULT_SECTION = "default"
REQUIRED_KEYS = ("client_token", "client_secret", "access_token")


@dataclass
class EdgeRcSection:
    """One resolved credential section"""
    path: Path
    section: str
    credentials: Credentials
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    headers_to_sign: List[str] = field(default_factory=list)

    @property
    def host(self) -> Optional[str]:
        return self.credentials.host


def default_edgerc_paths() -> List[Path]:
    """
    Candidate credential file locations, in search order.

    ``$EDGERC`` when set, then ``~/.edgerc``, then ``./.edgerc``.
    """
    paths = []
    env_path = os.environ.get(EDGERC_ENV_VAR)
    if env_path:
        paths.append(Path(env_path).expanduser())
    paths.append(Path.home() / ".edgerc")
    paths.append(Path.cwd() / ".edgerc")
    return paths


def find_edgerc(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve the credential file to read.

    Args:
        path: Explicit path; the default locations are searched when None

    Returns:
        Path: Existing credential file

    Raises:
        MissingCredentials: If no file exists
    """
    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise MissingCredentials(
                f"Credential file not found: {candidate}",
                details={"path": str(candidate)}
            )
        return candidate

    searched = default_edgerc_paths()
    for candidate in searched:
        if candidate.is_file():
            return candidate

    raise MissingCredentials(
        "No .edgerc credential file found",
        details={"searched": [str(p) for p in searched]}
    )


def _parse_max_body(raw: Optional[str], path: Path, section: str) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_MAX_BODY_SIZE
    try:
        value = int(raw.strip())
    except ValueError:
        raise CredentialFileError(
            f"Invalid max-body value {raw!r} in [{section}] of {path}",
            details={"path": str(path), "section": section}
        )
    if value <= 0:
        raise CredentialFileError(
            f"max-body must be positive in [{section}] of {path}",
            details={"path": str(path), "section": section}
        )
    return value


def load_edgerc(
    section: str = DEFAULT_SECTION,
    path: Optional[Union[str, Path]] = None
) -> EdgeRcSection:
    """
    Load one credential section.

    Args:
        section: Section name
        path: Credential file path, or None to search the default locations

    Returns:
        EdgeRcSection: Parsed section

    Raises:
        MissingCredentials: If the file, section or a required key is missing
        CredentialFileError: If the file cannot be parsed
    """
    edgerc_path = find_edgerc(path)

    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(edgerc_path, 'r', encoding='utf-8') as f:
            parser.read_file(f)
    except (configparser.Error, UnicodeDecodeError) as e:
        raise CredentialFileError(
            f"Failed to parse credential file {edgerc_path}: {e}",
            details={"path": str(edgerc_path)}
        )
    except OSError as e:
        raise CredentialFileError(
            f"Failed to read credential file {edgerc_path}: {e}",
            details={"path": str(edgerc_path)}
        )

    if not parser.has_section(section):
        raise MissingCredentials(
            f"Section [{section}] not found in {edgerc_path}",
            details={"path": str(edgerc_path), "section": section, "available": parser.sections()}
        )

    values = parser[section]
    missing = [key for key in REQUIRED_KEYS if not values.get(key, '').strip()]
    if missing:
        raise MissingCredentials(
            f"Section [{section}] of {edgerc_path} is missing: {', '.join(missing)}",
            details={"path": str(edgerc_path), "section": section, "missing": missing}
        )

    host = values.get('host', '').strip()
    credentials = Credentials(
        client_token=values['client_token'].strip(),
        client_secret=values['client_secret'].strip(),
        access_token=values['access_token'].strip(),
        host=normalize_host(host) if host else None,
    )

    max_body = values.get('max-body', values.get('max_body'))
    headers_to_sign = [
        name.strip()
        for name in values.get('headers_to_sign', '').split(',')
        if name.strip()
    ]

    logger.debug(f"Read section [{section}] from {edgerc_path}")
    return EdgeRcSection(
        path=edgerc_path,
        section=section,
        credentials=credentials,
        max_body_size=_parse_max_body(max_body, edgerc_path, section),
        headers_to_sign=headers_to_sign,
    )
