"""Tests for the action payload codec."""

import base64
import json

import pytest

from inventory.core.codec import Attachment, decode_action, encode_action
from inventory.core.exceptions import PayloadError

PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\x00"


class TestEncodeAction:

    def test_round_trip_with_binary_attachment(self):
        attachment = Attachment(PNG_HEADER, file_name="front.png", content_type="image/png")
        raw = encode_action({"product_data": {"inventory_code": 4321, "model": "T14"}}, attachment)

        payload = decode_action(raw)
        assert payload.data == {"product_data": {"inventory_code": 4321, "model": "T14"}}
        assert payload.attachment.content == PNG_HEADER
        assert payload.attachment.file_name == "front.png"
        assert payload.attachment.content_type == "image/png"

    def test_attachment_metadata_is_stored(self):
        raw = encode_action({}, Attachment(b"abc", file_name="a.bin"))
        stored = json.loads(raw)
        assert stored["image_size"] == 3
        assert stored["image_file_name"] == "a.bin"

    def test_without_attachment(self):
        payload = decode_action(encode_action({"product_id": 9}))
        assert payload.attachment is None
        assert payload.get("product_id") == 9

    def test_unserializable_value_raises(self):
        with pytest.raises(PayloadError):
            encode_action({"value": object()})


class TestDecodeAction:

    def test_accepts_alias_key(self):
        raw = json.dumps({"product_id": 1, "image": base64.b64encode(b"xyz").decode()})
        assert decode_action(raw).attachment.content == b"xyz"

    def test_accepts_data_url(self):
        encoded = base64.b64encode(PNG_HEADER).decode()
        raw = json.dumps({"imageData": f"data:image/png;base64,{encoded}"})

        attachment = decode_action(raw).attachment
        assert attachment.content == PNG_HEADER
        assert attachment.content_type == "image/png"

    def test_finds_attachment_nested_in_section(self):
        raw = json.dumps({
            "product_data": {
                "inventory_code": 12,
                "image_data": base64.b64encode(b"photo").decode(),
                "image_file_name": "p.jpg",
            }
        })
        payload = decode_action(raw)
        assert payload.attachment.content == b"photo"
        assert "image_data" not in payload.section("product_data")
        assert payload.section("product_data") == {"inventory_code": 12}

    def test_section_falls_back_to_flat_data(self):
        payload = decode_action(json.dumps({"to_worker": "Ann"}))
        assert payload.section("update_data") == {"to_worker": "Ann"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", None])
    def test_rejects_malformed_payload(self, raw):
        with pytest.raises(PayloadError):
            decode_action(raw)

    def test_rejects_invalid_base64(self):
        with pytest.raises(PayloadError):
            decode_action(json.dumps({"image_data": "***"}))
