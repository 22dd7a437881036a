"""Minimal ABI encoding for the portrait registry calls.

Only the shapes the registries use are supported: uint256 and uint256[]
arguments; uint256, address, string and string[] return values.
"""

from typing import Optional, Sequence

# Function selectors (first 4 bytes of keccak256 of the signature)
PORTRAIT_ID_COUNTER = "0x6096dce3"  # portraitIdCounter()
PORTRAIT_ID_TO_OWNER = "0x1c497486"  # portraitIdToOwner(uint256)
PORTRAIT_ID_TO_PORTRAIT_HASH = "0x5bfdf7c6"  # portraitIdToPortraitHash(uint256)
GET_NAMES_FOR_PORTRAIT_IDS = "0x264696d5"  # getNamesForPortraitIds(uint256[])

WORD_BYTES = 32
ZERO_ADDRESS = "0x" + "0" * 40
MAX_UINT256 = 2**256 - 1


class AbiDecodeError(ValueError):
    """Raised when call return data does not match the expected shape."""

    pass


def encode_uint256(value: int) -> str:
    """Encode an unsigned integer as one 32-byte word (hex, no prefix)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_call(selector: str, *args: int) -> str:
    """Encode a call whose arguments are all uint256."""
    return selector + "".join(encode_uint256(arg) for arg in args)


def encode_uint256_array_call(selector: str, values: Sequence[int]) -> str:
    """Encode a call taking a single uint256[] argument."""
    return (
        selector
        + encode_uint256(WORD_BYTES)  # offset of the dynamic argument
        + encode_uint256(len(values))
        + "".join(encode_uint256(v) for v in values)
    )


def _body(data: str) -> str:
    if not isinstance(data, str):
        raise AbiDecodeError(f"expected hex string, got {type(data).__name__}")
    body = data[2:] if data.startswith("0x") else data
    try:
        bytes.fromhex(body)
    except ValueError as e:
        raise AbiDecodeError(f"invalid hex data: {e}") from e
    return body.lower()


def _read_uint(body: str, byte_offset: int) -> int:
    start = byte_offset * 2
    word = body[start:start + WORD_BYTES * 2]
    if len(word) != WORD_BYTES * 2:
        raise AbiDecodeError(f"result too short to read word at byte {byte_offset}")
    return int(word, 16)


def _read_string_at(body: str, byte_offset: int) -> str:
    length = _read_uint(body, byte_offset)
    start = (byte_offset + WORD_BYTES) * 2
    end = start + length * 2
    if end > len(body):
        raise AbiDecodeError(f"string of {length} bytes overruns result")
    return bytes.fromhex(body[start:end]).decode("utf-8", errors="replace")


def decode_uint256(data: str) -> int:
    """Decode a single uint256 return value."""
    body = _body(data)
    if not body:
        raise AbiDecodeError("empty result")
    return _read_uint(body, 0)


def decode_address(data: str) -> Optional[str]:
    """Decode an address return value; the zero address becomes None."""
    body = _body(data)
    if not body:
        raise AbiDecodeError("empty result")
    value = _read_uint(body, 0)
    address = "0x" + format(value, "064x")[-40:]
    if address == ZERO_ADDRESS:
        return None
    return address


def decode_string(data: str) -> str:
    """Decode a single string return value.

    A bare "0x" (no return data) decodes to the empty string.
    """
    body = _body(data)
    if not body:
        return ""
    return _read_string_at(body, _read_uint(body, 0))


def decode_string_array(data: str) -> list[str]:
    """Decode a string[] return value."""
    body = _body(data)
    if not body:
        raise AbiDecodeError("empty result")

    array_offset = _read_uint(body, 0)
    count = _read_uint(body, array_offset)
    # Element offsets are relative to the word after the length
    base = array_offset + WORD_BYTES
    if (base + count * WORD_BYTES) * 2 > len(body):
        raise AbiDecodeError(f"array of {count} elements overruns result")

    return [
        _read_string_at(body, base + _read_uint(body, base + index * WORD_BYTES))
        for index in range(count)
    ]
