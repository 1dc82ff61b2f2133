"""
Library linking

Solidity leaves a 40 character marker in the creation bytecode wherever a
library address is needed. Since solc 0.5 the marker is
``__$<first 34 hex chars of keccak256(fully qualified name)>$__``; older
compilers wrote ``__<name padded with underscores>__``. Linking replaces
every marker with the 20 byte library address.
"""

import re
import logging
from typing import Dict, List, Mapping, Optional

from web3 import Web3

from .errors import UnresolvedPlaceholder

logger = logging.getLogger(__name__)

PLACEHOLDER_LENGTH = 40
# bytecode proper is pure hex, so any '_' or '$' can only belong to a marker
MARKER_PATTERN = re.compile(r'__.{36}__')


def placeholder(fully_qualified_name: str) -> str:
    """Hashed marker solc emits for a library"""
    digest = Web3.to_hex(Web3.keccak(text=fully_qualified_name))[2:36]
    return f'__${digest}$__'


def legacy_placeholder(name: str) -> str:
    """Marker emitted by solc < 0.5"""
    return f'__{name[:36]}'.ljust(PLACEHOLDER_LENGTH - 2, '_') + '__'


def find_placeholders(bytecode: str) -> List[str]:
    """Markers still present in the bytecode, in order of first appearance"""
    code = bytecode[2:] if bytecode.startswith('0x') else bytecode
    found = []
    for match in MARKER_PATTERN.finditer(code):
        if match.group(0) not in found:
            found.append(match.group(0))
    return found


def _address_hex(key: str, address: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address for library {key}: {address!r}")
    return Web3.to_checksum_address(address)[2:].lower()


def _resolve_key(libraries: Mapping[str, str], source: str, name: str) -> Optional[str]:
    for key in (f'{source}:{name}', name):
        if key in libraries:
            return key
    return None


def link_bytecode(bytecode: str, libraries: Mapping[str, str],
                  link_references: Optional[Dict[str, Dict[str, List[Dict[str, int]]]]] = None) -> str:
    """
    Substitute library addresses into creation bytecode

    Args:
        bytecode: hex creation bytecode, with or without 0x prefix
        libraries: library key -> address, where a key is either the fully
            qualified ``path/To.sol:Name`` or the bare library name
        link_references: Hardhat ``linkReferences`` of the artifact, when known

    Returns:
        0x prefixed bytecode with every marker replaced

    Raises:
        UnresolvedPlaceholder: some marker has no supplied address
    """
    code = bytecode[2:] if bytecode.startswith('0x') else bytecode
    missing: List[str] = []
    used = set()

    for source, references in sorted((link_references or {}).items()):
        for name, offsets in sorted(references.items()):
            key = _resolve_key(libraries, source, name)
            if key is None:
                missing.append(f'{source}:{name}')
                continue
            used.add(key)
            address = _address_hex(key, libraries[key])
            for offset in offsets:
                start = offset['start'] * 2
                end = start + offset['length'] * 2
                code = code[:start] + address + code[end:]

    for key, address in libraries.items():
        for marker in (placeholder(key), legacy_placeholder(key)):
            if marker in code:
                code = code.replace(marker, _address_hex(key, address))
                used.add(key)

    reported = {placeholder(name) for name in missing}
    remaining = [marker for marker in find_placeholders(code) if marker not in reported]
    if missing or remaining:
        raise UnresolvedPlaceholder(missing + remaining)

    unused = [key for key in libraries if key not in used]
    if unused:
        logger.warning(f"Libraries supplied but not referenced by the bytecode: {unused}")

    return '0x' + code
