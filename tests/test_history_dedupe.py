"""
Tests for filtering, deduplication and ordering.

Verifies:
- Idempotence and conservation of the full `process` pipeline
- Most recent occurrence survives, in place of its last use
- Exclusion and keep patterns
- Fail-fast compilation of invalid patterns
- Timestamp recency
"""

import unittest

from history_dedupe import (
    ExclusionPatternError,
    MatchMode,
    Recency,
    RegexPattern,
    clean_history,
    compile_patterns,
    dedupe_entries,
    filter_entries,
    process,
)
from history_parser import parse_history

SAMPLE = (
    "ls\n"
    "#100\n"
    "git status\n"
    "#110\n"
    "echo 'multi\n"
    "line'\n"
    "#120\n"
    "git status\n"
    "#130\n"
    "export TOKEN=abc\n"
    "#140\n"
    "make test\n"
    "#150\n"
    "echo 'multi\n"
    "line'\n"
    "#160\n"
    "make test\n"
)


class SubstringPattern:
    """Non-regex pattern; the pipeline only relies on `matches`."""

    def __init__(self, needle):
        self.needle = needle

    def matches(self, text):
        return self.needle in text


class TestProcess(unittest.TestCase):
    def test_reproduces_clean_history(self):
        text = "#123\necho foo\n#456\necho bar\n"
        self.assertEqual(process(text, []), text)

    def test_removes_duplicates_leaving_last_occurrence(self):
        text = "#456\necho foo\n#123\necho bar\n#789\necho foo\n"
        self.assertEqual(process(text, []), "#123\necho bar\n#789\necho foo\n")

    def test_file_position_beats_timestamp_by_default(self):
        text = "#456\necho foo\n#123\necho foo\n"
        self.assertEqual(process(text, []), "#123\necho foo\n")

    def test_multiline_commands_kept_in_order(self):
        text = "#1000\necho 'foo\nbar'\n#1000\necho done\n"
        self.assertEqual(process(text, []), text)

    def test_sample(self):
        expected = (
            "ls\n"
            "#120\n"
            "git status\n"
            "#130\n"
            "export TOKEN=abc\n"
            "#150\n"
            "echo 'multi\n"
            "line'\n"
            "#160\n"
            "make test\n"
        )
        self.assertEqual(process(SAMPLE, []), expected)

    def test_idempotent(self):
        patterns = compile_patterns(["TOKEN"])
        once = process(SAMPLE, patterns)
        self.assertEqual(process(once, patterns), once)
        for recency in Recency:
            once = process(SAMPLE, [], recency=recency)
            self.assertEqual(process(once, [], recency=recency), once)

    def test_conservation(self):
        before = {e.command for e in parse_history(SAMPLE)}
        after = [e.command for e in parse_history(process(SAMPLE, []))]
        self.assertEqual(len(after), len(set(after)))
        self.assertEqual(set(after), before)

    def test_all_excluded(self):
        self.assertEqual(process(SAMPLE, compile_patterns([".*"])), "")

    def test_empty_input(self):
        self.assertEqual(process("", compile_patterns(["x"])), "")

    def test_only_markers(self):
        self.assertEqual(process("#1\n#2\n", []), "")

    def test_accepts_any_pattern_object(self):
        result = process(SAMPLE, [SubstringPattern("git")])
        self.assertNotIn("git status", result)
        self.assertIn("make test", result)


class TestExclusions(unittest.TestCase):
    def test_excluded_commands_never_appear(self):
        patterns = compile_patterns([r"^git ", "TOKEN"])
        result = clean_history(SAMPLE, patterns)
        commands = [e.command for e in result.entries]
        self.assertNotIn("git status", commands)
        self.assertNotIn("export TOKEN=abc", commands)
        self.assertEqual(len(result.excluded), 3)

    def test_filtering_happens_before_dedup(self):
        result = clean_history(SAMPLE, compile_patterns(["git"]))
        self.assertEqual(len(result.excluded), 2)
        self.assertNotIn("git status", [e.command for e in result.duplicates])

    def test_search_matches_inside_multiline_command(self):
        result = clean_history(SAMPLE, compile_patterns(["^line'$"], mode=MatchMode.SEARCH))
        self.assertEqual(len(result.excluded), 0)
        result = clean_history(SAMPLE, compile_patterns([r"line'$"]))
        self.assertEqual(len(result.excluded), 2)

    def test_fullmatch_mode(self):
        patterns = compile_patterns(["make"], mode=MatchMode.FULLMATCH)
        self.assertEqual(len(clean_history(SAMPLE, patterns).excluded), 0)
        patterns = compile_patterns(["make test"], mode=MatchMode.FULLMATCH)
        self.assertEqual(len(clean_history(SAMPLE, patterns).excluded), 2)

    def test_ignore_case(self):
        self.assertFalse(RegexPattern.compile("token").matches("export TOKEN=abc"))
        self.assertTrue(RegexPattern.compile("token", ignore_case=True).matches("export TOKEN=abc"))

    def test_keep_overrides_exclusion(self):
        text = "#1\npass -c github\n#2\npass show github\n"
        exclusions = compile_patterns(["pass"])
        keep = compile_patterns([r"^pass -c"])
        self.assertEqual(process(text, exclusions, keep=keep), "#1\npass -c github\n")

    def test_keep_does_not_bypass_dedup(self):
        text = "#1\npass -c x\n#2\npass -c x\n"
        keep = compile_patterns([r"^pass -c"])
        self.assertEqual(process(text, [], keep=keep), "#2\npass -c x\n")

    def test_filter_entries_split(self):
        entries = parse_history(SAMPLE).entries
        kept, excluded = filter_entries(entries, compile_patterns(["make"]))
        self.assertEqual(len(kept) + len(excluded), len(entries))
        self.assertTrue(all("make" in e.command for e in excluded))


class TestCompilePatterns(unittest.TestCase):
    def test_invalid_pattern_rejects_whole_set(self):
        with self.assertRaises(ExclusionPatternError) as ctx:
            compile_patterns(["ok", "(unclosed", "also ok"])
        self.assertEqual(ctx.exception.position, 1)
        self.assertEqual(ctx.exception.source, "(unclosed")
        self.assertIn("(unclosed", str(ctx.exception))

    def test_is_a_value_error(self):
        with self.assertRaises(ValueError):
            compile_patterns(["["])

    def test_empty(self):
        self.assertEqual(compile_patterns([]), [])


class TestDedupeEntries(unittest.TestCase):
    def test_survivor_is_greatest_source_order(self):
        entries = parse_history(SAMPLE).entries
        survivors, superseded = dedupe_entries(entries)
        by_command = {}
        for entry in entries:
            by_command[entry.command] = entry.source_order
        self.assertEqual({e.command: e.source_order for e in survivors}, by_command)
        self.assertEqual([e.source_order for e in survivors], sorted(e.source_order for e in survivors))
        self.assertEqual(len(survivors) + len(superseded), len(entries))

    def test_timestamp_recency(self):
        text = "#456\necho foo\n#123\necho foo\n#300\necho bar\n"
        self.assertEqual(
            process(text, [], recency=Recency.TIMESTAMP),
            "#300\necho bar\n#456\necho foo\n",
        )

    def test_timestamp_recency_ties_fall_back_to_position(self):
        text = "#5\nb\n#5\na\n#5\nb\n"
        self.assertEqual(process(text, [], recency=Recency.TIMESTAMP), "#5\na\n#5\nb\n")

    def test_timestamp_recency_keeps_untimed_entry_first(self):
        text = "ls\n#5\npwd\n"
        self.assertEqual(process(text, [], recency=Recency.TIMESTAMP), text)

    def test_commands_compared_exactly(self):
        text = "#1\necho foo\n#2\necho  foo\n#3\necho foo \n"
        self.assertEqual(process(text, []), text)


if __name__ == "__main__":
    unittest.main()
