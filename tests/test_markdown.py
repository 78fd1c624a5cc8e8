from muavin.channels.markdown import sanitize, split_message


def test_inline_styles_are_narrowed() -> None:
    assert sanitize("**a** __b__ ~~c~~") == "*a* _b_ c"


def test_code_block_contents_are_untouched() -> None:
    block = "```python\nx = a**b**c\ny = __init__ ~~z~~\n| not | a table |\n```"
    text = f"**before**\n{block}\n__after__"

    out = sanitize(text)

    assert block in out
    assert out == f"*before*\n{block}\n_after_"


def test_table_is_wrapped_and_prose_left_alone() -> None:
    text = "| a | b |\n| 1 | 2 |\nsome prose here"

    out = sanitize(text)

    assert out == "```\n| a | b |\n| 1 | 2 |\n```\nsome prose here"


def test_table_after_prose_keeps_preceding_newline() -> None:
    text = "Results:\n| a | b |\n| 1 | 2 |  "

    assert sanitize(text) == "Results:\n```\n| a | b |\n| 1 | 2 |  \n```"


def test_first_closing_fence_wins() -> None:
    text = "```one``` **mid** ```two```"

    assert sanitize(text) == "```one``` *mid* ```two```"


def test_sanitize_is_idempotent_on_its_output() -> None:
    once = sanitize("**bold** and a table\n| x | y |\n| 1 | 2 |")

    assert sanitize(once) == once


def test_empty_text() -> None:
    assert sanitize("") == ""


def test_split_message_prefers_paragraph_breaks() -> None:
    text = ("a" * 30) + "\n\n" + ("b" * 30)

    chunks = split_message(text, max_len=40)

    assert chunks == ["a" * 30, "b" * 30]


def test_split_message_short_text_is_single_chunk() -> None:
    assert split_message("hello", max_len=40) == ["hello"]
    assert split_message("", max_len=40) == []


def test_placeholder_lookalike_in_input_is_left_alone() -> None:
    assert sanitize("a \x00CODEBLOCK3\x00 b") == "a \x00CODEBLOCK3\x00 b"


def test_placeholder_lookalike_does_not_duplicate_real_block() -> None:
    text = "```x```\x00CODEBLOCK0\x00 **b**"

    assert sanitize(text) == "```x```\x00CODEBLOCK0\x00 *b*"
