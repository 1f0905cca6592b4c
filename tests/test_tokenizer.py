"""Tests for the shell command tokenizer."""

from agentguard.core.environment import Environment
from agentguard.core.types import TokenType
from agentguard.shell.tokenizer import Tokenizer, handle_escapes

ENV = Environment.synthetic({"PROJECT": "/srv/app", "EMPTY": ""}, home="/home/agent", cwd="/workspace")


class TestTokenizer:
    tokenizer = Tokenizer(ENV)

    def test_simple_command(self):
        parsed = self.tokenizer.tokenize("ls -la /tmp")
        assert parsed.normalized == "ls -la /tmp"
        assert [t.type for t in parsed.tokens] == [
            TokenType.COMMAND,
            TokenType.ARGUMENT,
            TokenType.ARGUMENT,
        ]
        assert len(parsed.segments) == 1
        assert parsed.segments[0].command == "ls"
        assert parsed.segments[0].args == ("-la", "/tmp")
        assert not parsed.is_chained
        assert not parsed.is_piped

    def test_blank_input_has_no_segments(self):
        parsed = self.tokenizer.tokenize("   ")
        assert parsed.segments == ()
        assert parsed.normalized == ""

    def test_quotes_are_stripped_but_kept_in_original(self):
        parsed = self.tokenizer.tokenize("git commit -m 'fix && ship'")
        message = parsed.tokens[-1]
        assert message.value == "fix && ship"
        assert message.original_value == "'fix && ship'"
        assert len(parsed.segments) == 1
        assert not parsed.is_chained

    def test_double_quotes_suppress_pipe(self):
        parsed = self.tokenizer.tokenize('echo "a | b"')
        assert not parsed.is_piped
        assert parsed.segments[0].args == ("a | b",)

    def test_chain_operators_split_segments(self):
        parsed = self.tokenizer.tokenize("make && make test || echo failed; ls")
        assert [s.command for s in parsed.segments] == ["make", "make", "echo", "ls"]
        assert [s.operator for s in parsed.segments] == ["&&", "||", ";", None]
        assert parsed.is_chained
        assert not parsed.is_piped

    def test_pipe_and_chain_flags_together(self):
        parsed = self.tokenizer.tokenize("cat file | grep x && echo done")
        assert parsed.is_piped
        assert parsed.is_chained

    def test_operators_without_spaces(self):
        parsed = self.tokenizer.tokenize("echo hi&&rm -rf x|wc")
        assert [s.command for s in parsed.segments] == ["echo", "rm", "wc"]
        assert parsed.segments[1].args == ("-rf", "x")

    def test_first_token_after_operator_is_command(self):
        parsed = self.tokenizer.tokenize("a b | c d")
        types = [(t.value, t.type) for t in parsed.tokens]
        assert ("c", TokenType.COMMAND) in types
        assert ("d", TokenType.ARGUMENT) in types

    def test_redirects_are_tagged_and_dropped_from_segments(self):
        parsed = self.tokenizer.tokenize("echo hi > out.txt")
        assert parsed.tokens[2].type is TokenType.REDIRECT
        assert parsed.segments[0].args == ("hi", "out.txt")
        assert parsed.normalized == "echo hi > out.txt"

    def test_escaped_space_is_not_a_boundary(self):
        parsed = self.tokenizer.tokenize(r"echo hello\ world")
        assert parsed.segments[0].args == ("hello world",)

    def test_escaped_backslash(self):
        parsed = self.tokenizer.tokenize("echo \\\\")
        assert parsed.segments[0].args == ("\\",)

    def test_escaped_quotes_become_quotes(self):
        parsed = self.tokenizer.tokenize(r"echo \"hello\"")
        assert parsed.segments[0].args == ("hello",)

    def test_escaped_semicolon_is_an_argument(self):
        parsed = self.tokenizer.tokenize(r"find . -exec rm {} \;")
        assert len(parsed.segments) == 1
        assert parsed.segments[0].args[-1] == ";"

    def test_newline_separates_commands(self):
        parsed = self.tokenizer.tokenize("echo one\nrm -rf build")
        assert [s.command for s in parsed.segments] == ["echo", "rm"]
        assert parsed.segments[0].operator == ";"
        assert parsed.is_chained

    def test_background_ampersand_separates_commands(self):
        parsed = self.tokenizer.tokenize("sleep 5 & rm -rf /")
        assert [s.command for s in parsed.segments] == ["sleep", "rm"]

    def test_redirection_ampersand_stays_in_word(self):
        parsed = self.tokenizer.tokenize("make 2>&1")
        assert len(parsed.segments) == 1
        assert parsed.segments[0].args == ("2>&1",)

    def test_trailing_operator_leaves_last_segment_open(self):
        parsed = self.tokenizer.tokenize("ls;")
        assert len(parsed.segments) == 1
        assert parsed.segments[0].operator is None
        assert parsed.is_chained

    def test_trailing_pipe_sets_piped_flag(self):
        parsed = self.tokenizer.tokenize("ls |")
        assert [s.command for s in parsed.segments] == ["ls"]
        assert parsed.is_piped
        assert not parsed.is_chained

    def test_variable_expansion(self):
        parsed = self.tokenizer.tokenize("rm -rf $PROJECT/build ${PROJECT}")
        assert parsed.segments[0].args == ("-rf", "/srv/app/build", "/srv/app")

    def test_undefined_and_empty_variables_stay_literal(self):
        parsed = self.tokenizer.tokenize("rm -rf $MISSING $EMPTY")
        assert parsed.segments[0].args == ("-rf", "$MISSING", "$EMPTY")

    def test_home_variable_and_tilde(self):
        parsed = self.tokenizer.tokenize("ls ~ ~/docs $HOME/x")
        assert parsed.segments[0].args == ("/home/agent", "/home/agent/docs", "/home/agent/x")

    def test_relative_paths_resolve_against_cwd(self):
        parsed = self.tokenizer.tokenize("./run.sh ../shared")
        assert parsed.segments[0].command == "/workspace/run.sh"
        assert parsed.segments[0].args == ("/shared",)

    def test_tokenize_is_deterministic(self):
        raw = "sudo rm -rf $PROJECT && echo 'done' | tee log"
        assert self.tokenizer.tokenize(raw) == self.tokenizer.tokenize(raw)


def test_handle_escapes_keeps_unknown_sequences():
    assert handle_escapes(r"a\nb") == r"a\nb"


def test_handle_escapes_line_continuation():
    assert handle_escapes("rm -rf \\\n/tmp/x") == "rm -rf /tmp/x"
