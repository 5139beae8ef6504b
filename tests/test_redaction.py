"""Redaction tests."""

from cmdline_runner.redaction import REDACTED, Redactions, redact


class TestRedact:
    def test_single(self):
        assert redact("token sk-123 here", ["sk-123"]) == f"token {REDACTED} here"

    def test_every_occurrence(self):
        assert redact("a x a", ["a"]) == f"{REDACTED} x {REDACTED}"

    def test_multiple_secrets(self):
        assert redact("secret1 and secret2", ["secret1", "secret2"]) == (
            "[redacted] and [redacted]"
        )

    def test_applied_in_order(self):
        # the second secret only matches text left by the first pass
        assert redact("abc", ["abc", "red"]) == "[[redacted]acted]"

    def test_no_secrets(self):
        assert redact("plain", []) == "plain"

    def test_empty_secret_ignored(self):
        assert redact("plain", [""]) == "plain"


class TestRedactions:
    def test_dedup_and_order(self):
        redactions = Redactions(["b", "a", "b", ""])

        assert redactions.as_tuple() == ("b", "a")
        assert len(redactions) == 2
        assert "a" in redactions
        assert "" not in redactions

    def test_apply(self):
        redactions = Redactions()
        redactions.add("pw")

        assert redactions.apply("pw=pw") == f"{REDACTED}={REDACTED}"

    def test_repr_hides_secrets(self):
        assert "hunter2" not in repr(Redactions(["hunter2"]))
