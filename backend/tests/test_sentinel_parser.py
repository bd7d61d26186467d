import unittest

from dojo.protocol.sentinel_parser import SentinelStreamParser, decode_response

COACHED_RESPONSE = (
    '%%% {"confidence": 80, "topics": ["caching"], "feedback": "Clear answer."} %%%\n'
    "Add numbers to land it. ||| Can you quantify the impact?"
)


def _final_view(state) -> tuple:
    return (state.suggester_text, state.interviewer_text, state.telemetry, state.separator_seen)


def _run(chunks: list[str], opening: bool = False):
    parser = SentinelStreamParser()
    states = [parser.feed(chunk) for chunk in chunks]
    return states, parser.finalize(opening=opening)


class SentinelStreamParserTests(unittest.TestCase):
    def test_single_fragment_decomposition(self) -> None:
        state = decode_response(COACHED_RESPONSE)
        self.assertEqual(state.suggester_text, "Add numbers to land it.")
        self.assertEqual(state.interviewer_text, "Can you quantify the impact?")
        self.assertEqual(state.telemetry, {"confidence": 80, "topics": ["caching"], "feedback": "Clear answer."})

    def test_two_way_splits_match_single_fragment(self) -> None:
        expected = _final_view(decode_response(COACHED_RESPONSE))
        for index in range(len(COACHED_RESPONSE) + 1):
            _, final = _run([COACHED_RESPONSE[:index], COACHED_RESPONSE[index:]])
            self.assertEqual(_final_view(final), expected, f"split at {index}")

    def test_three_way_splits_match_single_fragment(self) -> None:
        text = '%%% {"a": 1} %%% Hint|||Next?'
        expected = _final_view(decode_response(text))
        for first in range(len(text) + 1):
            for second in range(first, len(text) + 1):
                _, final = _run([text[:first], text[first:second], text[second:]])
                self.assertEqual(_final_view(final), expected, f"split at {first}/{second}")

    def test_character_stream_matches_single_fragment(self) -> None:
        _, final = _run(list(COACHED_RESPONSE))
        self.assertEqual(_final_view(final), _final_view(decode_response(COACHED_RESPONSE)))

    def test_telemetry_emitted_exactly_once_for_any_chunking(self) -> None:
        for size in (1, 2, 3, 5, 8, 13, len(COACHED_RESPONSE)):
            chunks = [COACHED_RESPONSE[i:i + size] for i in range(0, len(COACHED_RESPONSE), size)]
            states, final = _run(chunks)
            emitted = [state for state in states + [final] if state.telemetry_just_emitted]
            self.assertEqual(len(emitted), 1, f"chunk size {size}")

    def test_channels_only_grow_while_streaming(self) -> None:
        states, final = _run(list(COACHED_RESPONSE))
        previous_suggester = previous_interviewer = ""
        for state in states + [final]:
            self.assertTrue(state.suggester_text.startswith(previous_suggester))
            self.assertTrue(state.interviewer_text.startswith(previous_interviewer))
            self.assertNotIn("%%", state.suggester_text)
            self.assertNotIn("||", state.suggester_text)
            previous_suggester = state.suggester_text
            previous_interviewer = state.interviewer_text

    def test_malformed_telemetry_stays_visible(self) -> None:
        text = "%%% not json at all %%% Slow down. ||| Why that design?"
        for size in (1, 4, len(text)):
            chunks = [text[i:i + size] for i in range(0, len(text), size)]
            states, final = _run(chunks)
            self.assertFalse(any(state.telemetry_just_emitted for state in states + [final]))
            self.assertIsNone(final.telemetry)
            self.assertEqual(final.suggester_text, "%%% not json at all %%% Slow down.")
            self.assertEqual(final.interviewer_text, "Why that design?")

    def test_json_array_is_not_accepted_as_telemetry(self) -> None:
        state = decode_response("%%% [1, 2] %%% hint ||| question")
        self.assertIsNone(state.telemetry)
        self.assertIn("[1, 2]", state.suggester_text)

    def test_only_first_telemetry_block_is_honored(self) -> None:
        state = decode_response('%%% {"a": 1} %%% hint %%% {"b": 2} %%% ||| Q')
        self.assertEqual(state.telemetry, {"a": 1})
        self.assertEqual(state.suggester_text, 'hint %%% {"b": 2} %%%')
        self.assertEqual(state.interviewer_text, "Q")

    def test_split_on_separator(self) -> None:
        state = decode_response("A|||B")
        self.assertEqual((state.suggester_text, state.interviewer_text), ("A", "B"))

    def test_second_separator_is_interviewer_text(self) -> None:
        state = decode_response("A|||B|||C")
        self.assertEqual(state.suggester_text, "A")
        self.assertEqual(state.interviewer_text, "B|||C")

    def test_opening_without_separator_belongs_to_interviewer(self) -> None:
        state = decode_response("Tell me about a challenging bug you fixed.", opening=True)
        self.assertEqual(state.suggester_text, "")
        self.assertEqual(state.interviewer_text, "Tell me about a challenging bug you fixed.")

    def test_opening_parser_withholds_text_until_a_separator_arrives(self) -> None:
        parser = SentinelStreamParser(opening=True)
        state = parser.feed("Tell me about ")
        self.assertEqual((state.suggester_text, state.interviewer_text), ("", ""))
        final = parser.finalize()
        self.assertEqual((final.suggester_text, final.interviewer_text), ("", "Tell me about"))

    def test_opening_parser_streams_once_the_separator_is_seen(self) -> None:
        parser = SentinelStreamParser(opening=True)
        parser.feed("Be concise")
        state = parser.feed(" ||| Tell me")
        self.assertEqual((state.suggester_text, state.interviewer_text), ("Be concise", "Tell me"))

    def test_later_turn_without_separator_stays_with_suggester(self) -> None:
        state = decode_response("Keep answers concrete.")
        self.assertEqual(state.suggester_text, "Keep answers concrete.")
        self.assertEqual(state.interviewer_text, "")
        self.assertFalse(state.separator_seen)

    def test_open_block_is_withheld_until_the_stream_closes(self) -> None:
        parser = SentinelStreamParser()
        state = parser.feed('Hint %%% {"partial": ')
        self.assertEqual(state.suggester_text, "Hint")
        final = parser.finalize()
        self.assertEqual(final.suggester_text, 'Hint %%% {"partial":')

    def test_trailing_partial_separator_is_withheld(self) -> None:
        parser = SentinelStreamParser()
        self.assertEqual(parser.feed("Good start|").suggester_text, "Good start")
        self.assertEqual(parser.feed("|").suggester_text, "Good start")
        state = parser.feed("|Next")
        self.assertTrue(state.separator_seen)
        self.assertEqual(state.interviewer_text, "Next")

    def test_percent_signs_in_prose_are_released(self) -> None:
        parser = SentinelStreamParser()
        self.assertEqual(parser.feed("Cut latency by 40%").suggester_text, "Cut latency by 40")
        self.assertEqual(parser.feed(" overall").suggester_text, "Cut latency by 40% overall")

    def test_repeated_state_reads_do_not_re_emit(self) -> None:
        parser = SentinelStreamParser()
        self.assertTrue(parser.feed('%%% {"a": 1} %%%').telemetry_just_emitted)
        self.assertFalse(parser.state.telemetry_just_emitted)
        self.assertFalse(parser.feed("").telemetry_just_emitted)

    def test_finalize_is_idempotent_and_blocks_feeding(self) -> None:
        parser = SentinelStreamParser()
        parser.feed("A|||B")
        first = parser.finalize()
        self.assertEqual(parser.finalize(), first)
        self.assertTrue(parser.finalized)
        with self.assertRaises(RuntimeError):
            parser.feed("more")

    def test_rejects_single_character_sentinels(self) -> None:
        with self.assertRaises(ValueError):
            SentinelStreamParser(separator="|")


if __name__ == "__main__":
    unittest.main()
