import unittest

from dojo.protocol.emphasis import Emphasis, StyledSegment, plain_text, split_emphasis, strongest_emphasis


class EmphasisTests(unittest.TestCase):
    def test_three_tiers_are_recognized(self) -> None:
        segments = split_emphasis("Fine. **Wrong.** ***Unacceptable.*** *Hmm*")
        self.assertEqual(
            segments,
            [
                StyledSegment("Fine. "),
                StyledSegment("Wrong.", Emphasis.WARNING),
                StyledSegment(" "),
                StyledSegment("Unacceptable.", Emphasis.SEVERE),
                StyledSegment(" "),
                StyledSegment("Hmm", Emphasis.CORRECTION),
            ],
        )

    def test_plain_text_strips_markers(self) -> None:
        self.assertEqual(plain_text("***No.*** Try *again*."), "No. Try again.")

    def test_strongest_emphasis(self) -> None:
        self.assertEqual(strongest_emphasis("calm question"), Emphasis.NONE)
        self.assertEqual(strongest_emphasis("*a* and **b**"), Emphasis.WARNING)

    def test_unmatched_marker_is_plain(self) -> None:
        self.assertEqual(split_emphasis("5 * 3"), [StyledSegment("5 * 3")])

    def test_empty_text(self) -> None:
        self.assertEqual(split_emphasis(""), [])


if __name__ == "__main__":
    unittest.main()
