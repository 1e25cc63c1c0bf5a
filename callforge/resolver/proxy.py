"""
Proxy Detection

Two complementary techniques:

1. ABI fingerprinting: recognizes the function/event/error shapes of the
   common upgradeable proxy standards without touching the chain.
2. On-chain resolution: reads the well-known storage slots, the EIP-1167
   minimal proxy bytecode, or common getter functions to find the
   implementation (and admin) address behind a proxy.
"""

import re
from typing import Any

import structlog
from eth_abi import decode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from ..chains.base_client import BaseChainClient
from ..errors import ChainClientError
from ..models.schema import ProxyConfidence, ProxyInfo

logger = structlog.get_logger(__name__)

# bytes32(uint256(keccak256('eip1967.proxy.implementation')) - 1)
EIP1967_IMPLEMENTATION_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"
# bytes32(uint256(keccak256('eip1967.proxy.admin')) - 1)
EIP1967_ADMIN_SLOT = "0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103"
# bytes32(uint256(keccak256('eip1967.proxy.beacon')) - 1)
EIP1967_BEACON_SLOT = "0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50"

# OpenZeppelin unstructured storage slots used before EIP-1967
LEGACY_IMPLEMENTATION_SLOT = "0x" + keccak(text="org.zeppelinos.proxy.implementation").hex()
LEGACY_ADMIN_SLOT = "0x" + keccak(text="org.zeppelinos.proxy.admin").hex()

# EIP-1167: 0x363d3d373d3d3d363d73<implementation>5af43d82803e903d91602b57fd5bf3
MINIMAL_PROXY_RE = re.compile(
    r"^0x363d3d373d3d3d363d73([0-9a-f]{40})5af43d82803e903d91602b57fd5bf3", re.IGNORECASE
)

COMMON_IMPLEMENTATION_GETTERS = (
    "implementation()",
    "getImplementation()",
    "_implementation()",
    "target()",
)

ZERO_WORD = "0x" + "0" * 64

PROXY_TYPES = ("uups", "transparent", "beacon", "diamond", "minimal", "unknown")


# ==================== ABI Fingerprinting ====================


def _names(items: list[dict[str, Any]]) -> set[str]:
    return {str(item.get("name", "")) for item in items}


def detect_proxy_from_abi(abi: list[dict[str, Any]]) -> ProxyInfo:
    """
    Classify an ABI as a proxy (or not) from its shape alone.

    Later, more specific patterns override earlier ones: an ABI with both
    implementation() and BeaconUpgraded is reported as a beacon proxy.

    Returns:
        ProxyInfo with is_proxy, proxy_type, confidence and the indicators
        that led to the verdict. Addresses are left unset.
    """
    functions = [i for i in abi if i.get("type", "function") == "function"]
    events = [i for i in abi if i.get("type") == "event"]
    errors = [i for i in abi if i.get("type") == "error"]
    function_names = _names(functions)
    event_names = _names(events)
    error_names = _names(errors)

    indicators: list[str] = []
    proxy_type: str | None = None
    confidence = ProxyConfidence.LOW

    # UUPS / ERC-1967
    if "Upgraded" in event_names or any("ERC1967" in n for n in error_names):
        indicators.append("ERC1967 upgrade pattern detected")
        proxy_type = "uups"
        confidence = ProxyConfidence.HIGH

    if "implementation" in function_names:
        indicators.append("implementation() function found")
        if proxy_type != "uups":
            proxy_type = "transparent"
            confidence = ProxyConfidence.MEDIUM

    if function_names & {"upgradeTo", "upgradeToAndCall"} and proxy_type == "uups":
        indicators.append("UUPS upgrade functions found")

    # Transparent
    if function_names & {"admin", "changeAdmin"} or any("ProxyDenied" in n for n in error_names):
        indicators.append("Transparent proxy admin pattern detected")
        if proxy_type is None:
            proxy_type = "transparent"
            confidence = ProxyConfidence.MEDIUM

    # Beacon
    if "beacon" in function_names or "BeaconUpgraded" in event_names:
        indicators.append("Beacon proxy pattern detected")
        proxy_type = "beacon"
        confidence = ProxyConfidence.HIGH

    # Diamond (EIP-2535)
    if "diamondCut" in function_names or {"facets", "facetFunctionSelectors"} <= function_names:
        indicators.append("Diamond (EIP-2535) proxy pattern detected")
        proxy_type = "diamond"
        confidence = ProxyConfidence.HIGH

    has_fallback = any(i.get("type") == "fallback" for i in abi)
    has_proxy_constructor = any(
        i.get("type") == "constructor"
        and any(p.get("name") in ("implementation", "_logic", "_data") for p in i.get("inputs") or [])
        for i in abi
    )
    if has_fallback:
        indicators.append("Fallback function present")
    if has_proxy_constructor:
        indicators.append("Proxy-style constructor detected")

    few_functions = len(functions) <= 1
    if few_functions and not events and has_fallback and proxy_type is None:
        indicators.append("Minimal proxy pattern detected")
        proxy_type = "minimal"
        confidence = ProxyConfidence.MEDIUM

    is_proxy = proxy_type is not None or (
        has_fallback and few_functions and (has_proxy_constructor or not functions)
    )
    if is_proxy and proxy_type is None:
        indicators.append("Generic proxy pattern detected")
        proxy_type = "unknown"
        confidence = ProxyConfidence.LOW

    return ProxyInfo(
        is_proxy=is_proxy,
        proxy_type=proxy_type,
        confidence=confidence,
        indicators=indicators,
    )


# ==================== On-chain Resolution ====================


def storage_word_to_address(word: str | None) -> str | None:
    """Last 20 bytes of a storage word as a checksummed address; None for zero."""
    if not word:
        return None
    hex_word = word.lower().removeprefix("0x").rjust(64, "0")
    if int(hex_word, 16) == 0:
        return None
    return to_checksum_address("0x" + hex_word[-40:])


class ProxyResolver:
    """
    Resolves implementation and admin addresses of a deployed proxy.

    Every lookup is best effort: RPC failures are logged and treated as
    "not found" so the caller can fall back to the proxy's own ABI.
    """

    def __init__(self, chain_client: BaseChainClient) -> None:
        self._client = chain_client

    async def _read_slot(self, address: str, slot: str) -> str | None:
        try:
            word = await self._client.get_storage_at(address, slot)
        except (ChainClientError, ValueError) as e:
            logger.warning("storage_slot_read_failed", address=address, slot=slot, error=str(e))
            return None
        result = storage_word_to_address(word)
        if result:
            logger.debug("storage_slot_hit", address=address, slot=slot, value=result)
        return result

    async def _call_address_getter(self, address: str, signature: str) -> str | None:
        data = "0x" + function_signature_to_4byte_selector(signature).hex()
        try:
            raw = await self._client.call(address, data)
            if len(raw) < 32:
                return None
            (result,) = decode(["address"], raw[:32])
        except Exception as e:
            logger.debug("getter_call_failed", address=address, getter=signature, error=str(e))
            return None
        if int(result, 16) == 0:
            return None
        return to_checksum_address(result)

    async def _minimal_proxy_target(self, address: str) -> str | None:
        try:
            code = await self._client.get_code(address)
        except (ChainClientError, ValueError) as e:
            logger.warning("bytecode_read_failed", address=address, error=str(e))
            return None
        match = MINIMAL_PROXY_RE.match(code or "")
        return to_checksum_address("0x" + match.group(1)) if match else None

    async def get_implementation_address(
        self,
        address: str,
        proxy_type: str | None = None,
    ) -> tuple[str, str] | None:
        """
        Find the implementation behind a proxy.

        The proxy type narrows the search (a beacon proxy is read through
        its beacon, a minimal proxy through its bytecode); an unknown type
        tries every technique.

        Returns:
            (implementation address, method) or None. The method is one of
            eip1967_slot, beacon_slot, legacy_slot, minimal_bytecode or
            getter:<signature>.
        """
        if proxy_type == "diamond":
            logger.info("diamond_proxy_unsupported", address=address)
            return None

        if proxy_type in (None, "unknown", "uups", "transparent"):
            implementation = await self._read_slot(address, EIP1967_IMPLEMENTATION_SLOT)
            if implementation:
                return implementation, "eip1967_slot"

        if proxy_type in (None, "unknown", "beacon"):
            beacon = await self._read_slot(address, EIP1967_BEACON_SLOT)
            if beacon:
                implementation = await self._call_address_getter(beacon, "implementation()")
                if implementation:
                    return implementation, "beacon_slot"

        if proxy_type in (None, "unknown", "uups", "transparent"):
            implementation = await self._read_slot(address, LEGACY_IMPLEMENTATION_SLOT)
            if implementation:
                return implementation, "legacy_slot"

        if proxy_type in (None, "unknown", "minimal"):
            implementation = await self._minimal_proxy_target(address)
            if implementation:
                return implementation, "minimal_bytecode"

        if proxy_type in (None, "unknown", "transparent"):
            for signature in COMMON_IMPLEMENTATION_GETTERS:
                implementation = await self._call_address_getter(address, signature)
                if implementation:
                    logger.info("implementation_getter_hit", address=address, getter=signature)
                    return implementation, f"getter:{signature}"

        return None

    async def get_admin_address(self, address: str) -> str | None:
        """Admin from the EIP-1967 admin slot, then the legacy slot."""
        return await self._read_slot(address, EIP1967_ADMIN_SLOT) or await self._read_slot(
            address, LEGACY_ADMIN_SLOT
        )
