"""Unit tests for the attribute codec."""

import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest

from relations_lambda import codec
from relations_lambda.errors import MalformedRequest, SchemaMismatch
from relations_lambda.model import Dataset, StoreRecord

KEY_ATTRIBUTES = ("pk", "sk", "itemtype")


@dataclass
class Annotated(StoreRecord):
    """A record type with non-string attributes, to exercise other variants."""

    version: int = 0
    tags: Optional[List[str]] = None
    ratio: Optional[float] = None
    scores: Optional[Dict[str, Any]] = None


class TestEncode:
    """Tests for encode_attribute and encode."""

    def test_encode_attribute_string(self):
        """A string becomes a single S slot and nothing else."""
        assert codec.encode_attribute("pk", "c4c") == {"pk": {"S": "c4c"}}

    def test_encode_record_skips_unset_optional_fields(self):
        """Optional fields left as None are not written."""
        item = codec.encode(Dataset(pk="a", sk="b", itemtype="dataset"))

        assert item == {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "dataset"},
        }

    def test_encode_record_includes_timestamp(self):
        item = codec.encode(
            Dataset(pk="a", sk="b", itemtype="dataset", created_at="2020-05-01T00:00:00Z")
        )

        assert item["created_at"] == {"S": "2020-05-01T00:00:00Z"}


class TestDecode:
    """Tests for decode."""

    def test_decode_all_declared_fields(self):
        item = {
            "pk": {"S": "c4c"},
            "sk": {"S": "c4c"},
            "itemtype": {"S": "dataset"},
            "created_at": {"S": "2020-05-01T00:00:00Z"},
        }

        record = codec.decode(item, Dataset)

        assert record == Dataset(
            pk="c4c", sk="c4c", itemtype="dataset", created_at="2020-05-01T00:00:00Z"
        )

    def test_decode_ignores_undeclared_attributes(self):
        """Store attributes the record does not declare are dropped."""
        item = {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "dataset"},
            "owner": {"S": "someone"},
            "size": {"N": "42"},
        }

        record = codec.decode(item, Dataset)

        assert record == Dataset(pk="a", sk="b", itemtype="dataset")

    def test_decode_optional_field_absent(self):
        record = codec.decode(
            {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"S": "dataset"}}, Dataset
        )

        assert record.created_at is None

    def test_decode_missing_required_field(self):
        """A missing required attribute is a SchemaMismatch, never a default."""
        with pytest.raises(SchemaMismatch, match="itemtype"):
            codec.decode({"pk": {"S": "a"}, "sk": {"S": "b"}}, Dataset)

    def test_decode_lists_every_missing_field(self):
        with pytest.raises(SchemaMismatch) as exc_info:
            codec.decode({"pk": {"S": "a"}}, Dataset)

        assert "sk" in str(exc_info.value)
        assert "itemtype" in str(exc_info.value)

    def test_decode_wrong_type(self):
        """A number where a string is declared does not silently coerce."""
        item = {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"N": "7"}}

        with pytest.raises(SchemaMismatch, match="itemtype"):
            codec.decode(item, Dataset)

    def test_decode_unknown_descriptor(self):
        item = {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"XX": "dataset"}}

        with pytest.raises(SchemaMismatch, match="unreadable"):
            codec.decode(item, Dataset)

    def test_decode_null_for_optional_field(self):
        item = {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "dataset"},
            "created_at": {"NULL": True},
        }

        assert codec.decode(item, Dataset).created_at is None

    def test_decode_other_variants(self):
        """Numbers and lists decode through the same path as strings."""
        item = {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "annotated"},
            "version": {"N": "3"},
            "tags": {"L": [{"S": "x"}, {"S": "y"}]},
        }

        record = codec.decode(item, Annotated)

        assert record.version == 3
        assert record.tags == ["x", "y"]

    def test_decode_numbers_as_declared_types(self):
        """Numbers come back as the declared int or float, not Decimal."""
        item = {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "annotated"},
            "version": {"N": "3"},
            "ratio": {"N": "2.5"},
        }

        record = codec.decode(item, Annotated)

        assert type(record.version) is int
        assert type(record.ratio) is float
        assert json.loads(json.dumps(record.to_dict()))["ratio"] == 2.5

    def test_decode_whole_number_for_float_field(self):
        item = {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"S": "x"}, "ratio": {"N": "4"}}

        assert type(codec.decode(item, Annotated).ratio) is float

    def test_decode_fraction_for_int_field(self):
        """A fractional number stored where an int is declared is a SchemaMismatch."""
        item = {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"S": "x"}, "version": {"N": "3.5"}}

        with pytest.raises(SchemaMismatch, match="version"):
            codec.decode(item, Annotated)

    def test_decode_nested_numbers_are_plain(self):
        """Numbers inside a map are converted too, so the record serializes to JSON."""
        item = {
            "pk": {"S": "a"},
            "sk": {"S": "b"},
            "itemtype": {"S": "x"},
            "scores": {"M": {"hits": {"N": "7"}, "avg": {"N": "0.25"}}},
        }

        record = codec.decode(item, Annotated)

        assert record.scores == {"hits": 7, "avg": 0.25}
        assert json.dumps(record.to_dict())

    def test_decode_rejects_non_dataclass(self):
        with pytest.raises(TypeError):
            codec.decode({"pk": {"S": "a"}}, dict)


class TestContinuationToken:
    """Tests for continuation token wrapping."""

    def test_no_key_gives_no_token(self):
        assert codec.encode_continuation_token(None) is None
        assert codec.encode_continuation_token({}) is None

    def test_token_restores_key(self):
        key = {"pk": {"S": "a"}, "sk": {"S": "b"}, "itemtype": {"S": "dataset"}}

        token = codec.encode_continuation_token(key)

        assert isinstance(token, str)
        assert codec.decode_continuation_token(token, KEY_ATTRIBUTES) == key

    @pytest.mark.parametrize("token", ["%%%", "bm90IGpzb24", "WzEsMiwzXQ=="])
    def test_bad_token(self, token):
        """Garbage, non-JSON and non-map tokens are all malformed requests."""
        with pytest.raises(MalformedRequest):
            codec.decode_continuation_token(token, KEY_ATTRIBUTES)

    def test_binary_key_round_trips(self):
        """Binary key values survive the JSON inside the token."""
        key = {"pk": {"B": b"\x00\xff"}, "sk": {"S": "a"}}

        token = codec.encode_continuation_token(key)

        assert codec.decode_continuation_token(token, KEY_ATTRIBUTES) == key

    def test_numeric_key_round_trips(self):
        key = {"pk": {"S": "a"}, "sk": {"N": "12"}}

        token = codec.encode_continuation_token(key)

        assert codec.decode_continuation_token(token, KEY_ATTRIBUTES) == key

    def test_foreign_attribute_is_rejected(self):
        """A token naming an attribute outside the index key never reaches the store."""
        token = codec.encode_continuation_token({"x": {"S": "y"}})

        with pytest.raises(MalformedRequest, match="unexpected key attribute"):
            codec.decode_continuation_token(token, KEY_ATTRIBUTES)

    @pytest.mark.parametrize(
        "value",
        [{"L": []}, {"M": {}}, {"S": "a", "N": "1"}, {"S": 5}, "a", {"B": "not base64!"}],
    )
    def test_non_scalar_key_value_is_rejected(self, value):
        raw = json.dumps({"pk": value}).encode("utf-8")
        token = base64.urlsafe_b64encode(raw).decode("ascii")

        with pytest.raises(MalformedRequest):
            codec.decode_continuation_token(token, KEY_ATTRIBUTES)
