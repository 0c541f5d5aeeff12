"""
ERC-20 Permit + ERC-3009 Smart Contract ABI Module

Minimal ABI definitions for the three token calls the facilitator submits,
plus a local calldata encoder so transactions can be built without an RPC
round trip.

Usage:
    from ERC20_ABI import get_permit_abi, encode_function_call

    data = encode_function_call(
        get_permit_abi(), "permit",
        [owner, spender, value, deadline, v, r, s],
    )
"""

from typing import Any, Dict, List, Sequence

from eth_abi import encode
from eth_utils import function_abi_to_4byte_selector, to_hex


def get_permit_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for EIP-2612 ``permit``.

    Returns:
        List[Dict[str, Any]]: ABI for
        ``permit(owner, spender, value, deadline, v, r, s)``.
    """
    return [
        {
            "name": "permit",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        }
    ]


def get_transfer_from_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-20 ``transferFrom(from, to, amount)``.
    """
    return [
        {
            "name": "transferFrom",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "amount", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        }
    ]


def get_transfer_with_authorization_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-3009 ``transferWithAuthorization`` (v, r, s variant).

    Returns:
        List[Dict[str, Any]]: ABI for ``transferWithAuthorization(from, to,
        value, validAfter, validBefore, nonce, v, r, s)``.
    """
    return [
        {
            "name": "transferWithAuthorization",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "bytes32"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        }
    ]


def _find_function(abi: List[Dict[str, Any]], fn_name: str) -> Dict[str, Any]:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            return entry
    raise ValueError(f"Function '{fn_name}' not found in ABI")


def encode_function_call(abi: List[Dict[str, Any]], fn_name: str, args: Sequence[Any]) -> str:
    """
    ABI-encode a contract call: 4-byte selector followed by the arguments.

    Args:
        abi: ABI list containing ``fn_name``.
        fn_name: Function to call.
        args: Positional arguments matching the ABI inputs.

    Returns:
        str: 0x-prefixed calldata.

    Raises:
        ValueError: Unknown function or wrong argument count.
    """
    fn_abi = _find_function(abi, fn_name)
    types = [item["type"] for item in fn_abi["inputs"]]
    if len(types) != len(args):
        raise ValueError(f"{fn_name} expects {len(types)} arguments, got {len(args)}")
    selector = function_abi_to_4byte_selector(fn_abi)
    return to_hex(selector + encode(types, list(args)))
