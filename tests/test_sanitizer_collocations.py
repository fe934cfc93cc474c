# -*- coding: utf-8 -*-
from swearmeter.collocations import STOP_WORDS, extract_collocations
from swearmeter.sanitizer import sanitize_text
from swearmeter.scorer import scan_text
from swearmeter.utils import now_ms, strip_html, utc_now


def test_sanitize_replaces_pii():
    raw = "email bob@example.com or call 555-123-4567, see https://x.com/a?b=1 @alice"
    out = sanitize_text(raw)
    assert "[EMAIL]" in out and "bob@example.com" not in out
    assert "[PHONE]" in out and "4567" not in out
    assert "[URL]" in out and "x.com" not in out
    assert out.endswith("[USER]")


def test_sanitize_fediverse_mention():
    assert sanitize_text("@bob@mastodon.social what the hell") == "[USER] what the hell"


def test_sanitize_collapses_whitespace_and_bad_input():
    assert sanitize_text("  damn \n\n  it\t ") == "damn it"
    assert sanitize_text(None) == ""
    assert sanitize_text(42) == ""
    assert sanitize_text("") == ""


def test_strip_html():
    assert strip_html("<p>what the <b>hell</b></p><p>&quot;no&quot;</p>") == 'what the hell "no"'
    assert strip_html("a<br/>b") == "a b"
    assert strip_html(None) == ""


def test_strip_html_keeps_block_elements_apart():
    text = strip_html("<ul><li>holy</li><li>shit</li></ul><div>what</div><div>the fuck</div>")
    assert text == "holy shit what the fuck"
    assert {m.term for m in scan_text(text)} == {"shit", "fuck"}
    assert strip_html("this is crap &amp; junk") == "this is crap & junk"


def test_now_ms_tracks_wall_clock():
    before = int(utc_now().timestamp() * 1000)
    ms = now_ms()
    assert isinstance(ms, int)
    assert before - 1000 <= ms <= before + 1000


def test_collocations_skip_stop_words():
    text = "you are such an idiot and a jerk"
    words = extract_collocations(text, [text.index("idiot")])
    assert "jerk" in words
    for w in ("you", "are", "such", "an", "and", "a"):
        assert w not in words
    assert "idiot" not in words


def test_collocations_window_and_cleanup():
    text = "one two three four five six damn seven eight nine ten eleven twelve"
    words = extract_collocations(text, [text.index("damn")], window=2)
    assert words == ["five", "six", "seven", "eight"]

    words = extract_collocations("WHAT the hell, Kevin!!", [9])
    assert words == ["kevin"]


def test_collocations_repeat_per_position():
    text = "shit traffic shit traffic"
    words = extract_collocations(text, [0, 13])
    assert words.count("traffic") == 4
    assert words.count("shit") == 2


def test_collocations_bad_input():
    assert extract_collocations(None, [0]) == []
    assert extract_collocations("", [0]) == []
    assert extract_collocations("damn", []) == []
    assert "the" in STOP_WORDS
