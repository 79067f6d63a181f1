from issueanalyzer.scrape.comments import (
    AUTHOR_PLACEHOLDER,
    MAX_BODY_LENGTH,
    CommentBlock,
    extract_author,
    extract_comments,
    extract_status_change,
    extract_timestamp,
    reconstruct_body,
)
from issueanalyzer.scrape.common import make_soup


def _comments(markup):
    return extract_comments(make_soup(markup))


def test_body_of_ten_chars_without_author_is_dropped():
    assert _comments('<div class="comment"><div class="content">0123456789</div></div>') == []


def test_body_of_eleven_chars_without_author_is_kept_with_placeholder():
    comments = _comments('<div class="comment"><div class="content">0123456789a</div></div>')
    assert len(comments) == 1
    assert comments[0].author == AUTHOR_PLACEHOLDER
    assert comments[0].body == "0123456789a"
    assert comments[0].id == "comment-1"


def test_short_body_with_author_is_kept():
    markup = '<div class="comment"><a class="username">dww</a><div class="content">+1</div></div>'
    comments = _comments(markup)
    assert [(c.author, c.body) for c in comments] == [("dww", "+1")]


def test_author_label_wins_over_selectors():
    markup = make_soup(
        '<div class="comment"><p>Comment #7</p><p>catch</p><p>3 June 2024</p><a class="username">someone-else</a></div>'
    )
    el = markup.select_one(".comment")
    block = CommentBlock(el, "Comment #7\ncatch\n3 June 2024\nsomeone-else", "7")
    assert extract_author(block) == "catch"


def test_author_falls_back_to_selectors_in_priority_order():
    soup = make_soup(
        '<div class="comment"><span class="username">second</span>'
        '<div class="comment__author"><a href="/u/first">first</a></div></div>'
    )
    el = soup.select_one(".comment")
    assert extract_author(CommentBlock(el, "no marker here", None)) == "first"


def test_author_label_rejects_boilerplate_lines():
    block = CommentBlock(None, "Comment #3\nCredit Attribution: x\n4 May 2024\nbody", "3")
    assert extract_author(block) == ""


def test_timestamp_pattern_then_time_element():
    assert extract_timestamp(CommentBlock(None, "posted 5 Sep 2023 at 14:02 by x", None)) == "5 Sep 2023 at 14:02"
    soup = make_soup('<div class="comment"><time datetime="2023-09-05">yesterday</time></div>')
    el = soup.select_one(".comment")
    assert extract_timestamp(CommentBlock(el, "yesterday", None)) == "yesterday"


def test_status_change_normalizes_separator():
    assert extract_status_change("Status:  Needs work  »  Needs review ") == "Needs work → Needs review"
    assert extract_status_change("Status:\nActive\n»\nFixed\nmore text") == "Active → Fixed"
    assert extract_status_change("Status: Active") is None


def test_reconstruct_body_skips_metadata_lines():
    text = "\n".join(
        [
            "Comment #4",
            "alice",
            "2 March 2024 at 08:15",
            "Credit Attribution: alice commented",
            "Status:",
            "Needs review",
            "»",
            "Needs work",
            "ok",
            "The tests fail on PostgreSQL.",
            "Please reroll.",
            "Log in or register to post comments",
        ]
    )
    assert reconstruct_body(text, author="alice", timestamp="2 March 2024 at 08:15") == (
        "The tests fail on PostgreSQL. Please reroll."
    )


def test_reconstruct_body_caps_length():
    text = "\n".join(["x" * 120 for _ in range(10)])
    body = reconstruct_body(text)
    assert len(body) == MAX_BODY_LENGTH


def test_text_split_preserves_page_order():
    text = "Comment #1\nann\n1 May 2024\nFirst comment text here\n\nComment #2\nbob\n2 May 2024\nSecond comment text here"
    comments = extract_comments(make_soup(text), text)
    assert [(c.id, c.author, c.body) for c in comments] == [
        ("comment-1", "ann", "First comment text here"),
        ("comment-2", "bob", "Second comment text here"),
    ]
    assert comments[1].timestamp == "2 May 2024"


def test_nested_comment_containers_are_not_counted_twice():
    markup = (
        '<div class="comment" id="comment-1"><a class="username">ann</a>'
        '<div class="content">Parent comment body text</div>'
        '<div class="comment" id="comment-2"><a class="username">bob</a>'
        '<div class="content">Reply body text</div></div></div>'
    )
    comments = _comments(markup)
    assert [c.id for c in comments] == ["comment-1"]


def test_text_split_drops_short_block_without_author():
    text = "Comment #1\nann\n1 May 2024\nFirst comment text here\n\nComment #2\n0123456789"
    comments = extract_comments(make_soup(text), text)
    assert [c.id for c in comments] == ["comment-1"]


def test_text_split_keeps_longer_block_with_placeholder_author():
    text = "Comment #2\n0123456789a"
    comments = extract_comments(make_soup(text), text)
    assert [(c.id, c.author, c.body) for c in comments] == [("comment-2", AUTHOR_PLACEHOLDER, "0123456789a")]


def test_first_body_line_is_not_taken_as_author():
    block = CommentBlock(None, "Comment #5\nLooks good to me, RTBC.\nThanks for the reroll.", "5")
    assert extract_author(block) == ""
    text = block.text
    comments = extract_comments(make_soup(text), text)
    assert comments[0].author == AUTHOR_PLACEHOLDER
    assert comments[0].body == "Looks good to me, RTBC. Thanks for the reroll."


def test_author_on_marker_line_or_before_attribution():
    assert extract_author(CommentBlock(None, "Comment #5 dww 1 May 2024\nLooks good", "5")) == "dww"
    block = CommentBlock(None, "Comment #6\ncatch\nCredit Attribution: catch commented\nRerolled.", "6")
    assert extract_author(block) == "catch"


def test_reconstructed_body_keeps_words_around_inline_markup():
    comments = _comments(
        '<div class="comment"><p>Use <strong>escaping</strong> for <code>&lt;b&gt;</code> tags please ok</p></div>'
    )
    assert [c.body for c in comments] == ["Use escaping for <b> tags please ok"]


def test_reconstruct_body_keeps_label_prefixed_sentences():
    text = "Version: 10.3 is also affected on a clean install.\nSteps attached."
    assert reconstruct_body(text) == "Version: 10.3 is also affected on a clean install. Steps attached."
    text = "Version: 10.3 is affected too.\nStatus: Active » Fixed\nThanks for the fix."
    assert reconstruct_body(text) == "Version: 10.3 is affected too. Thanks for the fix."
