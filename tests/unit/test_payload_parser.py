from __future__ import annotations

from harvester.services.payloads.parser import (
    PagingInfo,
    is_comment_item,
    normalize_profile_url,
    parse_paging,
    parse_payload,
    reply_parent_id,
)
from harvester.services.records.types import UNKNOWN_AUTHOR

from tests.unit.helpers import COMMENTS_URL, comment_item, comment_page

REPLY_URL = (
    "https://www.linkedin.com/voyager/api/feed/comments"
    "?commentUrn=urn%3Ali%3Acomment%3A(activity%3A1%2C2)&count=10&start=0"
)


def test_parse_payload_reads_top_level_elements() -> None:
    payload = comment_page(["mail me at jane@acme.io", "no contact here"], total=25)

    parsed = parse_payload(payload, COMMENTS_URL)

    assert len(parsed.comments) == 1
    comment = parsed.comments[0]
    assert comment.emails == ("jane@acme.io",)
    assert comment.author_name == "Jane Doe"
    assert comment.author_title == "Head of Growth"
    assert comment.profile_url == "https://www.linkedin.com/in/jane-doe"
    assert parsed.paging == PagingInfo(total=25, count=10, start=0)
    assert parsed.is_reply_source is False


def test_parse_payload_reads_data_elements_with_commentary_shape() -> None:
    payload = {
        "data": {
            "elements": [
                {
                    "urn": "urn:li:fsd_comment:(7100,7200)",
                    "commentary": {"text": "ping bob@example.org"},
                    "commenter": {"name": "Bob Stone", "headline": "Founder"},
                }
            ],
            "paging": {"total": 3, "count": 10, "start": 0},
        }
    }

    parsed = parse_payload(payload, COMMENTS_URL)

    assert [comment.emails for comment in parsed.comments] == [("bob@example.org",)]
    assert parsed.comments[0].author_name == "Bob Stone"
    assert parsed.comments[0].author_title == "Founder"
    assert parsed.paging is not None and parsed.paging.has_more_pages is False


def test_parse_payload_includes_embedded_replies() -> None:
    parent = comment_item("top level without contact", index=1)
    parent["comments"] = {"elements": [comment_item("reply: carol@example.net", index=2, name="Carol Poe")]}

    parsed = parse_payload({"included": [parent]}, COMMENTS_URL)

    assert [comment.author_name for comment in parsed.comments] == ["Carol Poe"]


def test_parse_payload_cross_references_included_actor() -> None:
    payload = {
        "elements": [
            {
                "entityUrn": "urn:li:comment:(activity:1,2)",
                "commentV2": {"text": "reach me: jane@acme.io"},
                "commenter": {"*profile": "urn:li:fsd_profile:ACoAAB123456"},
            }
        ],
        "included": [
            {
                "entityUrn": "urn:li:fsd_profile:ACoAAB123456",
                "firstName": "Jane",
                "lastName": "Doe",
                "headline": "CTO at Acme",
                "publicIdentifier": "jane-doe",
            }
        ],
    }

    comment = parse_payload(payload, COMMENTS_URL).comments[0]

    assert comment.author_name == "Jane Doe"
    assert comment.author_title == "CTO at Acme"
    assert comment.profile_url == "https://www.linkedin.com/in/jane-doe"


def test_parse_payload_replaces_identifier_like_names() -> None:
    item = comment_item("jane@acme.io", name="ACoAAB1234567890abcdefXYZ")

    comment = parse_payload({"elements": [item]}, COMMENTS_URL).comments[0]

    assert comment.author_name == UNKNOWN_AUTHOR


def test_parse_payload_uses_placeholder_when_author_missing() -> None:
    item = {"entityUrn": "urn:li:comment:(activity:1,3)", "commentV2": {"text": "jane@acme.io"}}

    comment = parse_payload({"elements": [item]}, COMMENTS_URL).comments[0]

    assert comment.author_name == UNKNOWN_AUTHOR
    assert comment.profile_url == ""


def test_parse_payload_caps_emails_per_comment_and_notes_truncation() -> None:
    text = " ".join(f"person{index}@example{index}.com" for index in range(8))

    parsed = parse_payload({"elements": [comment_item(text)]}, COMMENTS_URL)

    assert len(parsed.comments[0].emails) == 5
    assert parsed.comments[0].dropped_emails == 3
    assert parsed.notes and "truncated 3" in parsed.notes[0]


def test_parse_payload_skips_non_comment_items() -> None:
    payload = {
        "elements": [{"entityUrn": "urn:li:fsd_profile:ABC", "headline": "mail jane@acme.io"}],
    }

    assert parse_payload(payload, COMMENTS_URL).comments == []


def test_parse_payload_never_raises_on_odd_shapes() -> None:
    assert parse_payload(["not", "a", "dict"], COMMENTS_URL).comments == []
    assert parse_payload({"elements": "oops", "included": [1, None, "x"]}, COMMENTS_URL).comments == []
    assert parse_payload({"paging": {"total": "many"}}, COMMENTS_URL).paging is None


def test_reply_source_detected_from_comment_urn_parameter() -> None:
    parsed = parse_payload(comment_page(["reply from dan@example.com"]), REPLY_URL)

    assert parsed.is_reply_source is True
    assert reply_parent_id(REPLY_URL) == "urn:li:comment:(activity:1,2)"
    assert reply_parent_id(COMMENTS_URL) is None


def test_is_comment_item_accepts_type_tag() -> None:
    assert is_comment_item({"$type": "com.linkedin.voyager.feed.Comment"}) is True
    assert is_comment_item({"$type": "com.linkedin.voyager.identity.Profile"}) is False


def test_parse_paging_accepts_numeric_strings() -> None:
    assert parse_paging({"paging": {"total": "40", "count": "10"}}) == PagingInfo(total=40, count=10)


def test_normalize_profile_url_variants() -> None:
    assert normalize_profile_url("jane-doe") == "https://www.linkedin.com/in/jane-doe"
    assert normalize_profile_url("/in/jane-doe") == "https://www.linkedin.com/in/jane-doe"
    assert normalize_profile_url("https://example.com/x") == "https://example.com/x"
    assert normalize_profile_url("") == ""
