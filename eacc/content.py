"""
Content store: content-addressed blobs (job descriptions, results, messages)
plus the compact bytes32 form the contracts store.

PinataIpfsStore writes through the Pinata API and reads through a public IPFS
gateway. Nothing here retries; on ContentStoreError the caller can pick another
gateway from POPULAR_GATEWAYS (see with_gateway) and try again.
"""

import hashlib
import json
import re
import time
from typing import Any, Dict, List, Optional, Union

import base58
import requests

from eacc.config import IpfsConfig, debug
from eacc.crypto import decode_bytes32_string, encode_bytes32_string
from eacc.errors import ContentNotFound, ContentServiceUnavailable, ContentStoreError, ContentTimeout

POPULAR_GATEWAYS = [
    "https://ipfs.io/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
    "https://nftstorage.link/ipfs/",
]

# "hello world" CIDv0, fetched to check a gateway
GATEWAY_TEST_HASH = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"

SHA256_MULTIHASH_PREFIX = b"\x12\x20"

_PREFIX_RE = re.compile(r"^(ipfs://|/ipfs/|ipfs/)")
_CID_V0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CID_V1_RE = re.compile(r"^(b[a-z2-7]{58}|[a-z2-7]{59})$")


def clean_hash(content_hash: str) -> str:
    return _PREFIX_RE.sub("", content_hash.strip())


def is_valid_ipfs_hash(content_hash: Any) -> bool:
    if not isinstance(content_hash, str):
        return False
    return bool(_CID_V0_RE.match(content_hash) or _CID_V1_RE.match(content_hash))


def cid_for(data: bytes) -> str:
    """CIDv0 of a single raw block: base58(sha2-256 multihash)."""
    return base58.b58encode(SHA256_MULTIHASH_PREFIX + hashlib.sha256(data).digest()).decode("ascii")


def to_compact(content_hash: str) -> str:
    """
    Fixed-width bytes32 (0x hex) for a content hash.

    A CIDv0 keeps its 32-byte sha2-256 digest and drops the 0x1220 multihash
    prefix; any other identifier up to 31 bytes is stored as a bytes32 string.
    """
    content_hash = clean_hash(content_hash)
    if _CID_V0_RE.match(content_hash):
        raw = base58.b58decode(content_hash)
        if len(raw) == 34 and raw[:2] == SHA256_MULTIHASH_PREFIX:
            return "0x" + raw[2:].hex()
    if len(content_hash.encode("utf-8")) <= 31:
        return encode_bytes32_string(content_hash)
    raise ValueError(f"Cannot fit {content_hash!r} into bytes32; upload with CIDv0 or use a shorter identifier")


def _as_short_string(raw: bytes) -> Optional[str]:
    if raw[31] != 0:
        return None
    body = raw.rstrip(b"\x00")
    if not body or b"\x00" in body:
        return None
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return text if text.isprintable() else None


def from_compact(compact: Union[str, bytes]) -> str:
    """Inverse of to_compact."""
    if isinstance(compact, str):
        compact = bytes.fromhex(compact[2:] if compact.startswith("0x") else compact)
    raw = bytes(compact)
    if len(raw) != 32:
        raise ValueError("compact hash must be 32 bytes")
    if raw == b"\x00" * 32:
        raise ValueError("compact hash is empty")
    text = _as_short_string(raw)
    if text is not None:
        return decode_bytes32_string(raw)
    return base58.b58encode(SHA256_MULTIHASH_PREFIX + raw).decode("ascii")


class ContentStore:
    """put(bytes) -> hash, get(hash) -> bytes, plus the compact on-chain form."""

    def put(self, data: bytes) -> str:
        raise NotImplementedError

    def get(self, content_hash: str, timeout: Optional[float] = None) -> bytes:
        raise NotImplementedError

    def to_compact(self, content_hash: str) -> str:
        return to_compact(content_hash)

    def from_compact(self, compact: Union[str, bytes]) -> str:
        return from_compact(compact)

    def put_json(self, content: Union[Dict[str, Any], str]) -> str:
        if isinstance(content, str):
            content = {"content": content}
        return self.put(json.dumps(content, indent=2).encode("utf-8"))


class MemoryContentStore(ContentStore):
    """In-process store, keyed by CIDv0 of the stored bytes."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def put(self, data: bytes) -> str:
        cid = cid_for(data)
        self._blobs[cid] = bytes(data)
        return cid

    def get(self, content_hash: str, timeout: Optional[float] = None) -> bytes:
        content_hash = clean_hash(content_hash)
        try:
            return self._blobs[content_hash]
        except KeyError:
            raise ContentNotFound(f"No content for {content_hash}") from None

    def __len__(self):
        return len(self._blobs)


class PinataIpfsStore(ContentStore):
    def __init__(self, config: Optional[IpfsConfig] = None):
        self.config = config or IpfsConfig()

    def with_gateway(self, gateway: str) -> "PinataIpfsStore":
        """Same credentials, different read gateway."""
        return PinataIpfsStore(self.config.model_copy(update={"gateway": gateway}))

    def url_for(self, content_hash: str, gateway: Optional[str] = None) -> str:
        return f"{gateway or self.config.gateway}{clean_hash(content_hash)}"

    def _auth_headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise ContentStoreError(
                "IPFS API key required for uploads. Set PINATA_API_KEY and PINATA_SECRET_API_KEY in the environment."
            )
        return {
            "pinata_api_key": self.config.api_key,
            "pinata_secret_api_key": self.config.secret_api_key or "",
        }

    def _metadata(self, name: str, source: str = "eacc-sdk") -> Dict[str, Any]:
        now = int(time.time() * 1000)
        return {"name": name or f"eacc-content-{now}", "keyvalues": {"timestamp": str(now), "source": source}}

    def _request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        timeout = timeout if timeout is not None else self.config.timeout
        debug(f"ipfs {method} {url}")
        try:
            r = requests.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as err:
            raise ContentTimeout(f"{method} {url} timed out after {timeout}s") from err
        except requests.exceptions.RequestException as err:
            raise ContentServiceUnavailable(f"{method} {url} failed: {err}") from err
        if r.status_code == 404:
            raise ContentNotFound(f"{url} not found")
        if r.status_code == 429 or r.status_code >= 500:
            raise ContentServiceUnavailable(f"{url} returned {r.status_code}: {r.text[:200]}")
        if not r.ok:
            raise ContentStoreError(f"{url} returned {r.status_code}: {r.text[:200]}")
        return r

    # --- Writes (Pinata API) ---

    def put(self, data: bytes, name: str = "", timeout: Optional[float] = None) -> str:
        headers = self._auth_headers()
        r = self._request(
            "POST",
            f"{self.config.api_endpoint}/pinning/pinFileToIPFS",
            timeout=timeout,
            headers=headers,
            files={"file": (name or "content", bytes(data))},
            data={
                "pinataMetadata": json.dumps(self._metadata(name)),
                # CIDv0 so the hash fits the contracts' bytes32 slots
                "pinataOptions": json.dumps({"cidVersion": 0}),
            },
        )
        return r.json()["IpfsHash"]

    def put_json(self, content: Union[Dict[str, Any], str], name: str = "", timeout: Optional[float] = None) -> str:
        headers = self._auth_headers()
        r = self._request(
            "POST",
            f"{self.config.api_endpoint}/pinning/pinJSONToIPFS",
            timeout=timeout,
            headers=headers,
            json={
                "pinataContent": {"content": content} if isinstance(content, str) else content,
                "pinataMetadata": self._metadata(name),
                "pinataOptions": {"cidVersion": 0},
            },
        )
        return r.json()["IpfsHash"]

    def pin_by_hash(self, content_hash: str, name: str = "", timeout: Optional[float] = None) -> None:
        headers = self._auth_headers()
        self._request(
            "POST",
            f"{self.config.api_endpoint}/pinning/pinByHash",
            timeout=timeout,
            headers=headers,
            json={"hashToPin": clean_hash(content_hash), "pinataMetadata": self._metadata(name, source="eacc-sdk-pin")},
        )

    def list_pins(self, limit: int = 10, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        headers = self._auth_headers()
        r = self._request(
            "GET",
            f"{self.config.api_endpoint}/data/pinList",
            timeout=timeout,
            headers=headers,
            params={"status": "pinned", "pageLimit": limit},
        )
        return r.json().get("rows", [])

    # --- Reads (gateway) ---

    def get(self, content_hash: str, timeout: Optional[float] = None) -> bytes:
        r = self._request(
            "GET",
            self.url_for(content_hash),
            timeout=timeout,
            headers={"Accept": "application/json, text/plain, */*"},
        )
        return r.content

    def get_text(self, content_hash: str, timeout: Optional[float] = None) -> str:
        return self.get(content_hash, timeout=timeout).decode("utf-8")

    def get_json(self, content_hash: str, timeout: Optional[float] = None) -> Any:
        text = self.get_text(content_hash, timeout=timeout)
        try:
            return json.loads(text)
        except json.JSONDecodeError as err:
            raise ContentStoreError(f"Content at {content_hash} is not JSON: {err}") from err

    def check_gateway(self, gateway: Optional[str] = None, timeout: float = 5) -> bool:
        """True when the gateway serves the well-known test hash."""
        try:
            self._request("HEAD", self.url_for(GATEWAY_TEST_HASH, gateway), timeout=timeout)
        except ContentStoreError as err:
            debug(f"gateway {gateway or self.config.gateway} unavailable: {err}")
            return False
        return True
