"""Tests for outbound message splitting."""

from ocbot.message_split import HARD_LIMIT, SOFT_LIMIT, labeled_segments, split_message


class TestSplitMessage:
    def test_short_text_single_chunk(self) -> None:
        assert split_message("hello") == ["hello"]

    def test_exact_limit_single_chunk(self) -> None:
        text = "x" * SOFT_LIMIT
        assert split_message(text) == [text]

    def test_hard_cut_without_boundaries(self) -> None:
        text = "a" * 4000
        chunks = split_message(text)
        assert all(len(c) <= SOFT_LIMIT for c in chunks)
        assert "".join(chunks) == text
        assert [len(c) for c in chunks] == [1900, 1900, 200]

    def test_prefers_newline(self) -> None:
        text = "a" * 1500 + "\n" + "b" * 300 + " " + "c" * 500
        chunks = split_message(text)
        assert chunks[0] == "a" * 1500
        assert chunks[1].startswith("b")

    def test_falls_back_to_space(self) -> None:
        text = "a" * 1200 + " " + "b" * 1000
        chunks = split_message(text)
        assert chunks == ["a" * 1200, "b" * 1000]

    def test_rejects_boundary_in_first_half(self) -> None:
        text = "a" * 100 + "\n" + "b" * 3000
        chunks = split_message(text)
        assert len(chunks[0]) == SOFT_LIMIT

    def test_custom_limit(self) -> None:
        chunks = split_message("one two three four", max_length=9)
        assert chunks == ["one two", "three", "four"]
        assert all(len(c) <= 9 for c in chunks)


class TestLabeledSegments:
    def test_label_on_first_chunk_only(self) -> None:
        segments = labeled_segments("**User:**", "x" * 3000)
        assert segments[0].startswith("**User:**\n")
        assert not segments[1].startswith("**User:**")
        assert all(len(s) <= HARD_LIMIT for s in segments)

    def test_blank_text_yields_nothing(self) -> None:
        assert labeled_segments("L", "") == []
        assert labeled_segments("L", "   \n") == []
