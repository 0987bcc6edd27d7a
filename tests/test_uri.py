"""Unit tests for upload-result normalization (pure function, no I/O)."""

import json

from evidence_mint.uri import URI_FIELD_ALIASES, normalize


class TestKnownShapes:
    def test_bare_string(self):
        assert normalize("ipfs://abc123") == "ipfs://abc123"

    def test_singleton_list(self):
        assert normalize(["ipfs://abc123"]) == "ipfs://abc123"

    def test_list_takes_first_element(self):
        assert normalize(["ipfs://first", "ipfs://second"]) == "ipfs://first"

    def test_object_with_url(self):
        assert normalize({"url": "ipfs://abc123"}) == "ipfs://abc123"

    def test_object_with_uri(self):
        assert normalize({"uri": "ipfs://abc123"}) == "ipfs://abc123"

    def test_provider_aliases(self):
        assert normalize({"ipfsUrl": "ipfs://u"}) == "ipfs://u"
        assert normalize({"ipfsUri": "ipfs://i"}) == "ipfs://i"

    def test_list_of_objects(self):
        assert normalize([{"uri": "ipfs://nested"}]) == "ipfs://nested"

    def test_whitespace_is_trimmed(self):
        assert normalize("  ipfs://abc123\n") == "ipfs://abc123"


class TestPriority:
    def test_alias_order_is_fixed(self):
        assert URI_FIELD_ALIASES == ("url", "uri", "ipfsUrl", "ipfsUri")

    def test_url_wins_over_uri(self):
        assert normalize({"uri": "ipfs://uri", "url": "ipfs://url"}) == "ipfs://url"

    def test_uri_wins_over_ipfs_aliases(self):
        assert normalize({"ipfsUri": "ipfs://alias", "ipfsUrl": "ipfs://alias2", "uri": "ipfs://uri"}) == "ipfs://uri"

    def test_empty_field_falls_through_to_next_alias(self):
        assert normalize({"url": "", "uri": "ipfs://uri"}) == "ipfs://uri"

    def test_non_string_field_is_skipped(self):
        assert normalize({"url": 42, "ipfsUri": "ipfs://alias"}) == "ipfs://alias"


class TestFallback:
    def test_object_without_known_field_is_stringified(self):
        result = normalize({"cid": "abc123", "bucket": "evidence"})
        assert result == json.dumps({"bucket": "evidence", "cid": "abc123"}, separators=(",", ":"))

    def test_stringification_is_deterministic(self):
        assert normalize({"b": 1, "a": 2}) == normalize({"a": 2, "b": 1})

    def test_none_is_never_returned(self):
        assert normalize(None) == "null"

    def test_empty_values_still_produce_strings(self):
        for raw in ("", [], {}, ()):
            result = normalize(raw)
            assert isinstance(result, str)
            assert result

    def test_unserializable_value_falls_back_to_repr(self):
        result = normalize({1: "a", "b": 2})
        assert isinstance(result, str)
        assert result

    def test_list_without_usable_first_element_is_stringified(self):
        assert normalize([42, "ipfs://second"]) == '[42,"ipfs://second"]'

    def test_nested_list_is_not_unwrapped(self):
        assert normalize([["ipfs://inner"]]) == '[["ipfs://inner"]]'

    def test_self_referential_list(self):
        looped = []
        looped.append(looped)
        result = normalize(looped)
        assert isinstance(result, str)
        assert result

    def test_deeply_nested_list(self):
        nested = ["ipfs://deep"]
        for _ in range(100_000):
            nested = [nested]
        result = normalize(nested)
        assert isinstance(result, str)
        assert result

    def test_bytes_are_stringified(self):
        assert normalize(b"ipfs://raw") == json.dumps("b'ipfs://raw'")
