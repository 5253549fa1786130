from turnsense.extraction import parse_structured_response, strip_system_reminders

FULL = """Some preamble the parser should ignore.

📋 SUMMARY: Fixed the flaky parser test
🔍 ANALYSIS: The tokenizer reused a buffer.
It leaked state between calls.
⚡ ACTIONS: Copied the buffer per call
✅ RESULTS: 6 criteria, all satisfied
📊 STATUS: Done
➡️ NEXT: Nothing pending
\U0001f5e3️ Kai: Fixed the parser."""


def test_parses_every_marker():
    r = parse_structured_response(FULL)
    assert r.summary == "Fixed the flaky parser test"
    assert r.analysis == "The tokenizer reused a buffer.\nIt leaked state between calls."
    assert r.actions == "Copied the buffer per call"
    assert r.results == "6 criteria, all satisfied"
    assert r.status == "Done"
    assert r.next == "Nothing pending"
    assert r.completed == "Fixed the parser."


def test_emoji_is_optional_and_case_insensitive():
    r = parse_structured_response("summary: short one\nNext: later")
    assert r.summary == "short one"
    assert r.next == "later"


def test_bold_markers():
    r = parse_structured_response("**SUMMARY:** bolded\n**ACTIONS:** did things")
    assert r.summary == "bolded"
    assert r.actions == "did things"


def test_voice_line_without_variation_selector():
    r = parse_structured_response("\U0001f5e3 Kai: All wrapped up")
    assert r.completed == "All wrapped up"


def test_completed_marker():
    r = parse_structured_response("🎯 COMPLETED: Shipped the fix")
    assert r.completed == "Shipped the fix"


def test_missing_fields_are_none():
    r = parse_structured_response("just a chatty reply with no sections")
    assert r.summary is None
    assert r.completed is None
    assert r.is_empty()


def test_empty_marker_content_is_absent():
    r = parse_structured_response("📋 SUMMARY:\n🔍 ANALYSIS: something")
    assert r.summary is None
    assert r.analysis == "something"


def test_first_occurrence_wins():
    r = parse_structured_response("SUMMARY: first\nSUMMARY: second")
    assert r.summary == "first"


def test_system_reminders_are_removed():
    text = "<system-reminder>\n📋 SUMMARY: injected\n</system-reminder>\n📋 SUMMARY: real"
    assert "injected" not in strip_system_reminders(text)
    assert parse_structured_response(text).summary == "real"


def test_never_raises_on_odd_input():
    assert parse_structured_response("").is_empty()
    assert parse_structured_response(None).is_empty()
