"""Tests for the content store and the compact bytes32 hash form."""

import json

import pytest
import requests

from eacc.config import IpfsConfig
from eacc.content import (
    GATEWAY_TEST_HASH,
    MemoryContentStore,
    PinataIpfsStore,
    cid_for,
    clean_hash,
    from_compact,
    is_valid_ipfs_hash,
    to_compact,
)
from eacc.errors import ContentNotFound, ContentServiceUnavailable, ContentStoreError, ContentTimeout


class FakeResponse:
    def __init__(self, status_code=200, body=b"", payload=None):
        self.status_code = status_code
        self.content = body
        self.text = body.decode("utf-8", errors="replace")
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


@pytest.fixture
def calls(monkeypatch):
    """Record requests.request calls; set calls.reply / calls.error to control the outcome."""

    class Calls(list):
        reply = FakeResponse()
        error = None

    recorded = Calls()

    def fake_request(method, url, timeout=None, **kwargs):
        recorded.append(dict(method=method, url=url, timeout=timeout, **kwargs))
        if recorded.error is not None:
            raise recorded.error
        return recorded.reply

    monkeypatch.setattr("eacc.content.requests.request", fake_request)
    return recorded


@pytest.fixture
def pinata():
    return PinataIpfsStore(IpfsConfig(api_key="key", secret_api_key="secret", timeout=7))


class TestHashes:
    def test_cid_for_hello_world(self):
        """cid_for yields a 46-character CIDv0."""
        cid = cid_for(b"hello")

        assert cid.startswith("Qm")
        assert len(cid) == 46
        assert is_valid_ipfs_hash(cid)

    def test_clean_hash_strips_prefixes(self):
        assert clean_hash("ipfs://" + GATEWAY_TEST_HASH) == GATEWAY_TEST_HASH
        assert clean_hash("/ipfs/" + GATEWAY_TEST_HASH) == GATEWAY_TEST_HASH
        assert clean_hash(f"  {GATEWAY_TEST_HASH} ") == GATEWAY_TEST_HASH

    def test_invalid_hashes(self):
        assert not is_valid_ipfs_hash("Qm123")
        assert not is_valid_ipfs_hash(None)


class TestCompact:
    def test_cid_v0_round_trip(self):
        """A CIDv0 compacts to its raw digest and back."""
        compact = to_compact(GATEWAY_TEST_HASH)

        assert compact.startswith("0x") and len(compact) == 66
        assert from_compact(compact) == GATEWAY_TEST_HASH

    def test_short_string_round_trip(self):
        """Short identifiers are stored as bytes32 strings."""
        compact = to_compact("job-42-result")

        assert from_compact(compact) == "job-42-result"

    def test_accepts_raw_bytes(self):
        raw = bytes.fromhex(to_compact(GATEWAY_TEST_HASH)[2:])

        assert from_compact(raw) == GATEWAY_TEST_HASH

    def test_too_long_identifier(self):
        with pytest.raises(ValueError, match="Cannot fit"):
            to_compact("x" * 40)

    def test_bad_compact_values(self):
        with pytest.raises(ValueError, match="32 bytes"):
            from_compact("0x1234")
        with pytest.raises(ValueError, match="empty"):
            from_compact("0x" + "00" * 32)


class TestMemoryStore:
    def test_put_and_get(self):
        store = MemoryContentStore()
        cid = store.put(b"payload")

        assert cid == cid_for(b"payload")
        assert store.get("ipfs://" + cid) == b"payload"
        assert len(store) == 1

    def test_put_json_wraps_strings(self):
        """A bare string is stored as {"content": ...}."""
        store = MemoryContentStore()
        cid = store.put_json("hello")

        assert json.loads(store.get(cid)) == {"content": "hello"}

    def test_missing_content(self):
        with pytest.raises(ContentNotFound):
            MemoryContentStore().get(GATEWAY_TEST_HASH)


class TestPinataStore:
    def test_upload_requires_api_key(self, calls):
        """Uploads without credentials fail before any request is made."""
        with pytest.raises(ContentStoreError, match="PINATA_API_KEY"):
            PinataIpfsStore(IpfsConfig()).put(b"data")
        assert calls == []

    def test_put_uses_cid_v0(self, pinata, calls):
        calls.reply = FakeResponse(payload={"IpfsHash": GATEWAY_TEST_HASH})

        assert pinata.put(b"data", name="desc") == GATEWAY_TEST_HASH
        call = calls[0]
        assert call["url"] == "https://api.pinata.cloud/pinning/pinFileToIPFS"
        assert call["headers"]["pinata_api_key"] == "key"
        assert json.loads(call["data"]["pinataOptions"]) == {"cidVersion": 0}
        assert call["timeout"] == 7

    def test_put_json_wraps_strings(self, pinata, calls):
        calls.reply = FakeResponse(payload={"IpfsHash": GATEWAY_TEST_HASH})

        pinata.put_json("a message")

        assert calls[0]["json"]["pinataContent"] == {"content": "a message"}

    def test_pin_by_hash(self, pinata, calls):
        """pinByHash gets the bare CID and pin metadata."""
        pinata.pin_by_hash("ipfs://" + GATEWAY_TEST_HASH, name="job-9")

        call = calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://api.pinata.cloud/pinning/pinByHash"
        assert call["headers"]["pinata_api_key"] == "key"
        assert call["headers"]["pinata_secret_api_key"] == "secret"
        assert call["json"]["hashToPin"] == GATEWAY_TEST_HASH
        assert call["json"]["pinataMetadata"]["name"] == "job-9"
        assert call["json"]["pinataMetadata"]["keyvalues"]["source"] == "eacc-sdk-pin"
        assert call["timeout"] == 7

    def test_list_pins(self, pinata, calls):
        """pinList asks for pinned rows and returns them."""
        rows = [{"ipfs_pin_hash": GATEWAY_TEST_HASH}]
        calls.reply = FakeResponse(payload={"count": 1, "rows": rows})

        assert pinata.list_pins(limit=5) == rows
        call = calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://api.pinata.cloud/data/pinList"
        assert call["headers"]["pinata_api_key"] == "key"
        assert call["params"] == {"status": "pinned", "pageLimit": 5}

    def test_list_pins_without_rows(self, pinata, calls):
        calls.reply = FakeResponse(payload={"count": 0})

        assert pinata.list_pins() == []

    def test_get_reads_from_gateway(self, pinata, calls):
        calls.reply = FakeResponse(body=b'{"title": "x"}')

        assert pinata.get_json("ipfs://" + GATEWAY_TEST_HASH) == {"title": "x"}
        assert calls[0]["url"] == "https://ipfs.io/ipfs/" + GATEWAY_TEST_HASH

    def test_with_gateway(self, pinata, calls):
        calls.reply = FakeResponse(body=b"ok")

        pinata.with_gateway("https://dweb.link/ipfs/").get(GATEWAY_TEST_HASH, timeout=2)

        assert calls[0]["url"] == "https://dweb.link/ipfs/" + GATEWAY_TEST_HASH
        assert calls[0]["timeout"] == 2

    def test_not_json(self, pinata, calls):
        calls.reply = FakeResponse(body=b"plain text")

        with pytest.raises(ContentStoreError, match="not JSON"):
            pinata.get_json(GATEWAY_TEST_HASH)

    @pytest.mark.parametrize(
        "status, error",
        [(404, ContentNotFound), (429, ContentServiceUnavailable), (502, ContentServiceUnavailable), (400, ContentStoreError)],
    )
    def test_status_mapping(self, pinata, calls, status, error):
        calls.reply = FakeResponse(status_code=status, body=b"nope")

        with pytest.raises(error):
            pinata.get(GATEWAY_TEST_HASH)

    def test_timeout(self, pinata, calls):
        calls.error = requests.exceptions.ReadTimeout("slow")

        with pytest.raises(ContentTimeout):
            pinata.get(GATEWAY_TEST_HASH)

    def test_connection_error(self, pinata, calls):
        calls.error = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ContentServiceUnavailable):
            pinata.get(GATEWAY_TEST_HASH)

    def test_check_gateway(self, pinata, calls):
        """check_gateway reports failures as False."""
        assert pinata.check_gateway()
        calls.error = requests.exceptions.ConnectionError("down")
        assert not pinata.check_gateway("https://dweb.link/ipfs/")
