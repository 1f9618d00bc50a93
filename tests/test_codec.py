"""Tests for partycd.codec -- pipe-delimited wire messages."""

import pytest

from partycd.abilities import AbilityLibrary
from partycd.codec import (
    PROTOCOL_VERSION,
    AbilityUsed,
    CapabilityList,
    CapabilityRequest,
    ParseFailure,
    PresenceAck,
    PresenceQuery,
    decode,
    encode,
)

LIBRARY = AbilityLibrary()


def _decode(raw: str):
    return decode(raw, LIBRARY.is_valid)


# =====================================================================
# encode
# =====================================================================
class TestEncode:
    def test_ability_used(self):
        assert encode(AbilityUsed(2139, 25)) == "I|1|2139|25"

    def test_legacy_ability_used_has_no_tag(self):
        assert encode(AbilityUsed(2139, 25, legacy=True)) == "1|2139|25"

    def test_capability_list_sorted(self):
        assert encode(CapabilityList((187707, 147362))) == "L|1|147362,187707"

    def test_capability_list_empty(self):
        assert encode(CapabilityList(())) == "L|1|"

    def test_capability_request(self):
        assert encode(CapabilityRequest()) == "R|1"

    def test_presence_query_and_ack(self):
        assert encode(PresenceQuery("ab12-3")) == "Q|1|ab12-3"
        assert encode(PresenceAck("ab12-3")) == "A|1|ab12-3"

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError):
            encode(AbilityUsed(2139, 0))

    def test_fractional_duration_truncated(self):
        assert encode(AbilityUsed(57994, 12.5)) == "I|1|57994|12"
        assert encode(AbilityUsed(57994, 12.0, legacy=True)) == "1|57994|12"

    def test_sub_second_duration_rejected(self):
        with pytest.raises(ValueError):
            encode(AbilityUsed(2139, 0.5))

    def test_request_id_with_separator_rejected(self):
        with pytest.raises(ValueError):
            encode(PresenceQuery("a|b"))

    def test_empty_request_id_rejected(self):
        with pytest.raises(ValueError):
            encode(PresenceAck(""))

    def test_unknown_object_rejected(self):
        with pytest.raises(TypeError):
            encode("I|1|2139|25")


# =====================================================================
# decode -- accepted messages
# =====================================================================
class TestDecode:
    def test_ability_used(self):
        assert _decode("I|1|2139|25") == AbilityUsed(2139, 25)

    def test_legacy_ability_used(self):
        msg = _decode("1|1766|15")
        assert msg == AbilityUsed(1766, 15, legacy=True)
        assert msg.legacy is True

    def test_capability_list(self):
        assert _decode("L|1|147362,187707") == CapabilityList((147362, 187707))

    def test_capability_list_empty_payload(self):
        assert _decode("L|1|") == CapabilityList(())

    def test_capability_list_missing_payload(self):
        assert _decode("L|1") == CapabilityList(())

    def test_capability_list_drops_unknown_and_garbage(self):
        assert _decode("L|1|999,abc,1766,") == CapabilityList((1766,))

    def test_capability_list_requires_plain_digits(self):
        assert _decode("L|1|1_766,+2139,57994") == CapabilityList((57994,))

    def test_capability_request(self):
        assert _decode("R|1") == CapabilityRequest()

    def test_presence_query(self):
        assert _decode("Q|1|abc-1") == PresenceQuery("abc-1")

    def test_presence_ack(self):
        assert _decode("A|1|abc-1") == PresenceAck("abc-1")

    def test_extra_trailing_fields_ignored(self):
        assert _decode("I|1|2139|25|future") == AbilityUsed(2139, 25)


# =====================================================================
# decode -- dropped messages
# =====================================================================
class TestDecodeFailures:
    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "X|1|2139|25",
            "I|2|2139|25",
            "2|2139|25",
            "I|one|2139|25",
            "I|1|abc|25",
            "I|1|2139|soon",
            "I|1|2139|0",
            "I|1|2139|-5",
            "I|1|424242|25",
            "1|424242|25",
            "I|1|2139",
            "Q|1|",
            "A|1",
            "R|2",
            "L|9|1766",
            "I|1|2139|nan",
            "I|1|2139|24.5",
            "I|1|2_139|2_5",
            "I|1|\uff12\uff11\uff13\uff19|25",
            "I|1|+2139|25",
            "1|1766|1e2",
        ],
    )
    def test_dropped(self, raw):
        assert isinstance(_decode(raw), ParseFailure)

    def test_failure_carries_reason_and_raw(self):
        result = _decode("I|2|2139|25")
        assert "version" in result.reason
        assert result.raw == "I|2|2139|25"

    def test_non_string_input(self):
        assert isinstance(decode(None, LIBRARY.is_valid), ParseFailure)

    def test_custom_version(self):
        assert _decode("I|1|2139|25") == AbilityUsed(2139, 25)
        assert isinstance(decode("I|1|2139|25", LIBRARY.is_valid, version=2), ParseFailure)


# =====================================================================
# round trip
# =====================================================================
@pytest.mark.parametrize(
    "message",
    [
        AbilityUsed(2139, 25),
        AbilityUsed(57994, 12, legacy=True),
        CapabilityList((147362, 187707)),
        CapabilityList(()),
        CapabilityRequest(),
        PresenceQuery("9f3a11c2-7"),
        PresenceAck("9f3a11c2-7"),
    ],
)
def test_round_trip(message):
    assert _decode(encode(message)) == message


def test_protocol_version_is_one():
    assert PROTOCOL_VERSION == 1
